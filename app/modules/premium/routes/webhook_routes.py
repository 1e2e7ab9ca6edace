# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/routes/webhook_routes.py

Rutas de notificaciones de proveedores.

Endpoints (prefijo /api/premium):
- POST /webhooks/paypal
- POST /mpesa/callback

Respuestas:
- 200 con el ack del proveedor aunque el intento no exista o ya sea
  terminal (evita reintentos infinitos)
- 401 si la firma/token no es válido (InvalidCallback)
- 503 si la verificación de firma no pudo completarse (PayPal reintenta)

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.database.database import get_async_session
from app.modules.premium.enums import PaymentProvider
from app.modules.premium.errors import ProviderUnavailable
from app.modules.premium.providers.registry import ProviderRegistry
from app.modules.premium.services import (
    ReconciliationEngine,
    build_ack,
    handle_provider_callback,
)
from .dependencies import get_provider_registry, get_reconciliation_engine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["premium:webhooks"])


async def _process(
    provider: PaymentProvider,
    request: Request,
    session: AsyncSession,
    registry: ProviderRegistry,
    engine: ReconciliationEngine,
) -> Dict[str, Any]:
    raw_body = await request.body()
    try:
        result = await handle_provider_callback(
            session,
            registry,
            provider,
            raw_body,
            request.headers,
            dict(request.query_params),
            engine=engine,
        )
    except ProviderUnavailable as e:
        logger.warning("premium_webhook_verification_unavailable provider=%s detail=%s", provider.value, e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error_code": "VERIFICATION_UNAVAILABLE", "message": "Try again later"},
        ) from e
    return build_ack(provider, result)


@router.post("/webhooks/paypal", status_code=status.HTTP_200_OK)
async def paypal_webhook(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
    registry: ProviderRegistry = Depends(get_provider_registry),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> Dict[str, Any]:
    """
    Webhook de PayPal.

    Eventos: PAYMENT.CAPTURE.COMPLETED/DENIED/DECLINED, CHECKOUT.ORDER.APPROVED,
    CHECKOUT.ORDER.VOIDED. Firma verificada con verify-webhook-signature.
    """
    return await _process(PaymentProvider.PAYPAL, request, session, registry, engine)


@router.post("/mpesa/callback", status_code=status.HTTP_200_OK)
async def mpesa_callback(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
    registry: ProviderRegistry = Depends(get_provider_registry),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> Dict[str, Any]:
    """Callback STK de Safaricom (token compartido en ?token=)."""
    return await _process(PaymentProvider.MPESA, request, session, registry, engine)


__all__ = ["router"]
