# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/services/callback_service.py

Canal asíncrono: webhooks de PayPal y callbacks STK de M-Pesa.

- InvalidCallback se propaga (la ruta responde 401) y se cuenta en métricas.
- Cualquier otro resultado (incluido NOT_FOUND o ALREADY_TERMINAL) se
  reconoce con éxito: el proveedor no debe reintentar algo que ya se procesó.
- CHECKOUT.ORDER.APPROVED dispara la captura; si PayPal no responde el
  intento queda pending para el sweep.

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.premium.enums import PaymentProvider
from app.modules.premium.errors import InvalidCallback, ProviderUnavailable
from app.modules.premium.metrics import premium_callbacks_rejected_total
from app.modules.premium.providers.base import Pending
from app.modules.premium.providers.registry import ProviderRegistry
from app.modules.premium.services.reconciliation_service import (
    ReconciliationEngine,
    ReconciliationResult,
)

logger = logging.getLogger(__name__)

MPESA_ACK: dict[str, Any] = {"ResultCode": 0, "ResultDesc": "Received"}


def build_ack(provider: PaymentProvider, result: Optional[ReconciliationResult] = None) -> dict[str, Any]:
    """Cuerpo de respuesta que espera cada proveedor."""
    if PaymentProvider(provider) is PaymentProvider.MPESA:
        return dict(MPESA_ACK)
    body: dict[str, Any] = {"status": "received"}
    if result is not None:
        body["action"] = result.action.value
    return body


async def handle_provider_callback(
    session: AsyncSession,
    registry: ProviderRegistry,
    provider: PaymentProvider,
    raw_payload: bytes,
    headers: Mapping[str, str],
    params: Optional[Mapping[str, str]] = None,
    engine: Optional[ReconciliationEngine] = None,
) -> Optional[ReconciliationResult]:
    """
    Autentica, normaliza y reconcilia un callback.

    Returns:
        ReconciliationResult, o None si la captura quedó diferida.

    Raises:
        InvalidCallback: firma/token inválido o payload ilegible.
        ProviderUnavailable: la verificación de firma no pudo completarse.
    """
    provider = PaymentProvider(provider)
    adapter = registry.get(provider)
    engine = engine or ReconciliationEngine()

    try:
        outcome = await adapter.parse_callback(raw_payload, headers, params)
    except InvalidCallback as e:
        premium_callbacks_rejected_total.labels(provider.value).inc()
        logger.warning("premium_callback_rejected provider=%s reason=%s", provider.value, e.reason)
        raise

    logger.info(
        "premium_callback_received provider=%s ref=%s kind=%s",
        provider.value,
        outcome.provider_reference or "-",
        outcome.kind,
    )

    if isinstance(outcome, Pending) and outcome.needs_capture and outcome.provider_reference:
        try:
            outcome = await adapter.capture_return(outcome.provider_reference)
        except ProviderUnavailable as e:
            logger.warning(
                "premium_callback_capture_deferred provider=%s ref=%s detail=%s",
                provider.value,
                outcome.provider_reference,
                str(e)[:200],
            )
            return None

    return await engine.reconcile(session, provider, outcome)


__all__ = ["handle_provider_callback", "build_ack", "MPESA_ACK"]
