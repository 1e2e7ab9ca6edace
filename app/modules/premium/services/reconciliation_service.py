# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/services/reconciliation_service.py

Motor de reconciliación: ÚNICA autoridad que convierte un Outcome de proveedor
en mutaciones del ledger y del entitlement.

Algoritmo para (provider, provider_reference):
1. Lookup en el ledger; no existe -> NOT_FOUND (log + métrica, se descarta)
2. Ya terminal -> ALREADY_TERMINAL (entrega duplicada o tardía)
3. Pending:
   - Success: monto/moneda confirmados deben coincidir con el ledger
     (si el canal los informa). Discrepancia -> failed/AMOUNT_MISMATCH.
     Coincide -> completed y, solo si la transición se aplicó, extender
     el entitlement EN LA MISMA TRANSACCIÓN.
   - Failure -> failed (o cancelled si el usuario canceló)
   - Pending -> sin cambios

Garantías:
- Exactamente una transición terminal por intento (UPDATE condicional)
- Exactamente una extensión de entitlement por intento completado
- Atomicidad: cualquier excepción hace rollback de ambos cambios

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.premium.enums import AttemptState, PaymentProvider
from app.modules.premium.errors import REASON_AMOUNT_MISMATCH
from app.modules.premium.metrics import (
    premium_amount_mismatch_total,
    premium_outcomes_total,
)
from app.modules.premium.models import PaymentAttempt
from app.modules.premium.plans import quantize_amount
from app.modules.premium.providers.base import Failure, Outcome, Pending, Success
from app.modules.premium.repositories import EntitlementStore, PaymentLedger
from app.modules.premium.utils.datetime_helpers import to_iso8601

logger = logging.getLogger(__name__)


class ReconcileAction(StrEnum):
    APPLIED_COMPLETED = "APPLIED_COMPLETED"
    APPLIED_FAILED = "APPLIED_FAILED"
    APPLIED_CANCELLED = "APPLIED_CANCELLED"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    STILL_PENDING = "STILL_PENDING"
    ALREADY_TERMINAL = "ALREADY_TERMINAL"
    NOT_FOUND = "NOT_FOUND"


@dataclass(frozen=True)
class ReconciliationResult:
    """Resultado de aplicar un Outcome."""
    action: ReconcileAction
    provider: PaymentProvider
    provider_reference: str
    attempt_id: Optional[str] = None
    state: Optional[AttemptState] = None
    new_expires_at: Optional[datetime] = None

    @property
    def applied(self) -> bool:
        return self.action in (
            ReconcileAction.APPLIED_COMPLETED,
            ReconcileAction.APPLIED_FAILED,
            ReconcileAction.APPLIED_CANCELLED,
            ReconcileAction.AMOUNT_MISMATCH,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "provider": self.provider.value,
            "provider_reference": self.provider_reference,
            "attempt_id": self.attempt_id,
            "state": self.state.value if self.state else None,
            "new_expires_at": to_iso8601(self.new_expires_at),
        }


def amounts_match(
    attempt: PaymentAttempt,
    amount_confirmed: Optional[Decimal],
    currency_confirmed: Optional[str],
) -> bool:
    """
    Compara lo confirmado por el proveedor contra lo registrado.

    Un campo ausente (None) no se verifica: el canal no lo informa.
    """
    if amount_confirmed is not None:
        if quantize_amount(amount_confirmed) != quantize_amount(attempt.amount):
            return False
    if currency_confirmed is not None:
        if currency_confirmed.strip().upper() != (attempt.currency or "").upper():
            return False
    return True


class ReconciliationEngine:
    """Aplica Outcomes de cualquier canal (captura, callback, poll, sweep)."""

    def __init__(
        self,
        ledger: Optional[PaymentLedger] = None,
        entitlements: Optional[EntitlementStore] = None,
    ) -> None:
        self.ledger = ledger or PaymentLedger()
        self.entitlements = entitlements or EntitlementStore()

    async def reconcile(
        self,
        session: AsyncSession,
        provider: PaymentProvider,
        outcome: Outcome,
        now: Optional[datetime] = None,
    ) -> ReconciliationResult:
        """
        Aplica `outcome` y hace commit.

        Cualquier excepción hace rollback (ni ledger ni entitlement cambian)
        y se propaga al llamador.
        """
        provider = PaymentProvider(provider)
        try:
            result = await self._apply(session, provider, outcome, now)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception(
                "premium_reconcile_error provider=%s ref=%s kind=%s",
                provider.value,
                outcome.provider_reference,
                outcome.kind,
            )
            raise

        premium_outcomes_total.labels(provider.value, result.action.value).inc()
        return result

    async def _apply(
        self,
        session: AsyncSession,
        provider: PaymentProvider,
        outcome: Outcome,
        now: Optional[datetime],
    ) -> ReconciliationResult:
        ref = outcome.provider_reference

        attempt = None
        if ref:
            attempt = await self.ledger.find_by_provider_reference(session, provider, ref)
        if attempt is None:
            logger.warning(
                "premium_reconcile action=NOT_FOUND provider=%s ref=%s kind=%s",
                provider.value,
                ref or "-",
                outcome.kind,
            )
            return ReconciliationResult(ReconcileAction.NOT_FOUND, provider, ref)

        def result(
            action: ReconcileAction,
            state: AttemptState,
            new_expires_at: Optional[datetime] = None,
        ) -> ReconciliationResult:
            return ReconciliationResult(action, provider, ref, attempt.id, state, new_expires_at)

        if attempt.state is not AttemptState.PENDING:
            logger.debug(
                "premium_reconcile action=ALREADY_TERMINAL attempt_id=%s state=%s kind=%s",
                attempt.id,
                attempt.state.value,
                outcome.kind,
            )
            return result(ReconcileAction.ALREADY_TERMINAL, attempt.state)

        if isinstance(outcome, Pending):
            return result(ReconcileAction.STILL_PENDING, AttemptState.PENDING)

        if isinstance(outcome, Failure):
            target = AttemptState.CANCELLED if outcome.cancelled else AttemptState.FAILED
            transition = await self.ledger.transition_terminal(
                session,
                attempt.id,
                target,
                failure_reason=outcome.reason_code,
            )
            if not transition.applied:
                return await self._lost_race(session, attempt, provider, ref)
            action = (
                ReconcileAction.APPLIED_CANCELLED
                if target is AttemptState.CANCELLED
                else ReconcileAction.APPLIED_FAILED
            )
            logger.info(
                "premium_reconcile action=%s attempt_id=%s reason=%s",
                action.value,
                attempt.id,
                outcome.reason_code,
            )
            return result(action, target)

        if isinstance(outcome, Success):
            return await self._apply_success(session, attempt, provider, outcome, now)

        raise TypeError(f"outcome no soportado: {outcome!r}")

    async def _apply_success(
        self,
        session: AsyncSession,
        attempt: PaymentAttempt,
        provider: PaymentProvider,
        outcome: Success,
        now: Optional[datetime],
    ) -> ReconciliationResult:
        ref = outcome.provider_reference

        if not amounts_match(attempt, outcome.amount_confirmed, outcome.currency_confirmed):
            transition = await self.ledger.transition_terminal(
                session,
                attempt.id,
                AttemptState.FAILED,
                failure_reason=REASON_AMOUNT_MISMATCH,
                metadata={
                    "confirmed_amount": str(outcome.amount_confirmed) if outcome.amount_confirmed is not None else None,
                    "confirmed_currency": outcome.currency_confirmed,
                },
            )
            if not transition.applied:
                return await self._lost_race(session, attempt, provider, ref)
            premium_amount_mismatch_total.labels(provider.value).inc()
            logger.error(
                "premium_reconcile action=AMOUNT_MISMATCH attempt_id=%s user_id=%s "
                "expected=%s %s confirmed=%s %s",
                attempt.id,
                attempt.user_id,
                attempt.amount,
                attempt.currency,
                outcome.amount_confirmed,
                outcome.currency_confirmed,
            )
            return ReconciliationResult(
                ReconcileAction.AMOUNT_MISMATCH, provider, ref, attempt.id, AttemptState.FAILED
            )

        transition = await self.ledger.transition_terminal(
            session,
            attempt.id,
            AttemptState.COMPLETED,
            receipt_id=outcome.receipt_id,
            metadata=dict(outcome.metadata) or None,
        )
        if not transition.applied:
            return await self._lost_race(session, attempt, provider, ref)

        # Solo quien aplicó la transición extiende el entitlement
        new_expires_at = await self.entitlements.extend(session, attempt.user_id, attempt.plan, now=now)

        logger.info(
            "premium_reconcile action=APPLIED_COMPLETED attempt_id=%s user_id=%s plan=%s "
            "receipt=%s new_expires_at=%s",
            attempt.id,
            attempt.user_id,
            attempt.plan.value,
            outcome.receipt_id or "-",
            to_iso8601(new_expires_at),
        )
        return ReconciliationResult(
            ReconcileAction.APPLIED_COMPLETED,
            provider,
            ref,
            attempt.id,
            AttemptState.COMPLETED,
            new_expires_at,
        )

    async def _lost_race(
        self,
        session: AsyncSession,
        attempt: PaymentAttempt,
        provider: PaymentProvider,
        ref: str,
    ) -> ReconciliationResult:
        """Otro canal cerró el intento entre el lookup y el UPDATE."""
        current = await self.ledger.get(session, attempt.id)
        state = current.state if current is not None else attempt.state
        logger.info(
            "premium_reconcile action=ALREADY_TERMINAL attempt_id=%s state=%s (concurrente)",
            attempt.id,
            state.value,
        )
        return ReconciliationResult(ReconcileAction.ALREADY_TERMINAL, provider, ref, attempt.id, state)


__all__ = [
    "ReconcileAction",
    "ReconciliationResult",
    "ReconciliationEngine",
    "amounts_match",
]
