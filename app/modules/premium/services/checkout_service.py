# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/services/checkout_service.py

Servicio de checkout Premium (canal síncrono).

Operaciones:
- initiate_charge: ledger pending (commit) -> create_charge -> attach.
  Si el proveedor no responde, el intento se cancela con PROVIDER_UNAVAILABLE
  (nunca podrá correlacionarse) y el error se propaga (HTTP 503).
- handle_capture_return: retorno del comprador (PayPal) o captura explícita.
- poll_and_reconcile_once: consulta al proveedor y reconcilia.

Ningún error de reconciliación se expone al usuario: ante ProviderUnavailable
el intento queda pending y el sweep lo resolverá.

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.premium.enums import AttemptState, PaymentPlan, PaymentProvider
from app.modules.premium.errors import (
    REASON_PROVIDER_UNAVAILABLE,
    AttemptNotFound,
    ProviderUnavailable,
)
from app.modules.premium.models import PaymentAttempt
from app.modules.premium.plans import get_plan_price
from app.modules.premium.providers.base import Outcome, PaymentProviderAdapter, Pending
from app.modules.premium.providers.registry import ProviderRegistry
from app.modules.premium.repositories import PaymentLedger
from app.modules.premium.services.reconciliation_service import (
    ReconciliationEngine,
    ReconcileAction,
)
from app.modules.premium.utils.phone import normalize_msisdn
from app.shared.config.settings_premium import PremiumSettings

logger = logging.getLogger(__name__)


# Mensajes para el usuario por estado del intento
STATE_MESSAGES: dict[AttemptState, str] = {
    AttemptState.PENDING: "Payment is being processed",
    AttemptState.COMPLETED: "Payment completed, premium activated",
    AttemptState.FAILED: "Payment failed",
    AttemptState.CANCELLED: "Payment was cancelled",
}


@dataclass(frozen=True)
class CheckoutResult:
    attempt_id: str
    provider: PaymentProvider
    plan: PaymentPlan
    amount: Decimal
    currency: str
    provider_reference: str
    user_facing_action: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AttemptStatusResult:
    """Estado de un intento tras un retorno/captura o una consulta."""
    attempt_id: str
    state: AttemptState
    action: Optional[ReconcileAction] = None

    @property
    def success(self) -> bool:
        return self.state is AttemptState.COMPLETED

    @property
    def message(self) -> str:
        return STATE_MESSAGES[self.state]


async def fetch_outcome(adapter: PaymentProviderAdapter, provider_reference: str) -> Outcome:
    """
    poll_status y, si la orden quedó aprobada sin captura (PayPal), captura.

    Lanza ProviderUnavailable.
    """
    outcome = await adapter.poll_status(provider_reference)
    if isinstance(outcome, Pending) and outcome.needs_capture:
        logger.info(
            "premium_capture_pending_approval provider=%s ref=%s",
            adapter.provider.value,
            provider_reference,
        )
        outcome = await adapter.capture_return(provider_reference)
    return outcome


class CheckoutService:
    """Canal síncrono: inicio de cobro, retorno/captura y consulta puntual."""

    def __init__(
        self,
        registry: ProviderRegistry,
        engine: Optional[ReconciliationEngine] = None,
        ledger: Optional[PaymentLedger] = None,
        settings: Optional[PremiumSettings] = None,
    ) -> None:
        self.registry = registry
        self.engine = engine or ReconciliationEngine(ledger=ledger)
        self.ledger = ledger or self.engine.ledger
        self.settings = settings

    # -----------------------------------------------------------
    # Inicio de cobro
    # -----------------------------------------------------------
    async def initiate_charge(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        plan: PaymentPlan,
        provider: PaymentProvider,
        phone_number: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Crea el intento y la transacción en el proveedor.

        Raises:
            ProviderNotConfigured: proveedor deshabilitado o sin credenciales
            InvalidPhoneNumber: teléfono M-Pesa no normalizable
            ProviderUnavailable: el proveedor no pudo iniciar el cobro
        """
        plan = PaymentPlan(plan)
        provider = PaymentProvider(provider)
        adapter = self.registry.require_configured(provider)

        metadata: dict[str, Any] = {}
        msisdn: Optional[str] = None
        if provider is PaymentProvider.MPESA:
            # Validar antes de crear el intento: un 400 no deja filas huérfanas
            msisdn = normalize_msisdn(phone_number or "")
            metadata["phone_number"] = msisdn

        price = get_plan_price(plan, provider, self.settings)

        # Fase 1: fila pending durable ANTES de llamar al proveedor
        attempt_id = await self.ledger.create_pending(
            session,
            user_id=user_id,
            plan=plan,
            amount=price.amount,
            currency=price.currency,
            provider=provider,
            metadata=metadata,
        )
        await session.commit()

        try:
            charge = await adapter.create_charge(
                attempt_id=attempt_id,
                user_id=user_id,
                plan=plan,
                amount=price.amount,
                currency=price.currency,
                phone_number=msisdn,
            )
        except ProviderUnavailable as e:
            await self.ledger.transition_terminal(
                session,
                attempt_id,
                AttemptState.CANCELLED,
                failure_reason=REASON_PROVIDER_UNAVAILABLE,
                metadata={"error": str(e)[:200]},
            )
            await session.commit()
            logger.warning(
                "premium_checkout_provider_unavailable attempt_id=%s provider=%s operation=%s",
                attempt_id,
                provider.value,
                e.operation,
            )
            raise

        # Fase 2: correlación con la referencia del proveedor
        await self.ledger.attach_provider_reference(session, attempt_id, charge.provider_reference)
        await session.commit()

        logger.info(
            "premium_checkout_started attempt_id=%s user_id=%s provider=%s plan=%s ref=%s",
            attempt_id,
            user_id,
            provider.value,
            plan.value,
            charge.provider_reference,
        )
        return CheckoutResult(
            attempt_id=attempt_id,
            provider=provider,
            plan=plan,
            amount=price.amount,
            currency=price.currency,
            provider_reference=charge.provider_reference,
            user_facing_action=charge.user_facing_action,
        )

    # -----------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------
    async def _load_attempt(
        self,
        session: AsyncSession,
        *,
        attempt_id: Optional[str] = None,
        provider_reference: Optional[str] = None,
        provider: Optional[PaymentProvider] = None,
        user_id: Optional[str] = None,
    ) -> PaymentAttempt:
        attempt: Optional[PaymentAttempt] = None
        if attempt_id:
            attempt = await self.ledger.get(session, attempt_id)
        elif provider_reference and provider is not None:
            attempt = await self.ledger.find_by_provider_reference(session, provider, provider_reference)
        elif provider_reference:
            attempt = await self.ledger.find_by_reference_any_provider(session, provider_reference)

        # Un intento ajeno se reporta como inexistente
        if attempt is None or (user_id is not None and attempt.user_id != str(user_id)):
            raise AttemptNotFound(attempt_id or provider_reference or "")
        return attempt

    # -----------------------------------------------------------
    # Retorno / captura
    # -----------------------------------------------------------
    async def handle_capture_return(
        self,
        session: AsyncSession,
        *,
        attempt_id: Optional[str] = None,
        provider_reference: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> AttemptStatusResult:
        """
        Captura tras la aprobación del comprador y reconcilia.

        Idempotente: un intento terminal devuelve su estado sin llamar al
        proveedor. Un timeout deja el intento pending.
        """
        attempt = await self._load_attempt(
            session,
            attempt_id=attempt_id,
            provider_reference=provider_reference,
            user_id=user_id,
        )
        if attempt.is_terminal or not attempt.provider_reference:
            return AttemptStatusResult(attempt.id, attempt.state)

        adapter = self.registry.get(attempt.provider)
        try:
            outcome = await adapter.capture_return(attempt.provider_reference)
        except ProviderUnavailable as e:
            logger.warning(
                "premium_capture_deferred attempt_id=%s provider=%s detail=%s",
                attempt.id,
                attempt.provider.value,
                str(e)[:200],
            )
            return AttemptStatusResult(attempt.id, AttemptState.PENDING)

        result = await self.engine.reconcile(session, attempt.provider, outcome)
        return AttemptStatusResult(attempt.id, result.state or attempt.state, result.action)

    # -----------------------------------------------------------
    # Consulta puntual
    # -----------------------------------------------------------
    async def poll_and_reconcile_once(
        self,
        session: AsyncSession,
        provider_reference: Optional[str] = None,
        provider: Optional[PaymentProvider] = None,
        *,
        attempt_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> AttemptStatusResult:
        """Consulta el estado en el proveedor y lo aplica (si sigue pending)."""
        attempt = await self._load_attempt(
            session,
            attempt_id=attempt_id,
            provider_reference=provider_reference,
            provider=PaymentProvider(provider) if provider is not None else None,
            user_id=user_id,
        )
        if attempt.is_terminal or not attempt.provider_reference:
            return AttemptStatusResult(attempt.id, attempt.state)

        adapter = self.registry.get(attempt.provider)
        try:
            outcome = await fetch_outcome(adapter, attempt.provider_reference)
        except ProviderUnavailable as e:
            logger.warning(
                "premium_poll_deferred attempt_id=%s provider=%s detail=%s",
                attempt.id,
                attempt.provider.value,
                str(e)[:200],
            )
            return AttemptStatusResult(attempt.id, AttemptState.PENDING)

        result = await self.engine.reconcile(session, attempt.provider, outcome)
        return AttemptStatusResult(attempt.id, result.state or attempt.state, result.action)


__all__ = [
    "CheckoutService",
    "CheckoutResult",
    "AttemptStatusResult",
    "STATE_MESSAGES",
    "fetch_outcome",
]
