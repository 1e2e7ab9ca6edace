# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/repositories/payment_ledger.py

Ledger durable de intentos de pago Premium.

Responsabilidades:
- Creación en dos fases: fila pending sin referencia, luego attach de la
  referencia del proveedor cuando la llamada de creación responde.
- Búsqueda por (provider, provider_reference).
- Transición terminal condicional (UPDATE ... WHERE state='pending'): si ya
  es terminal devuelve applied=False sin error. Es el mecanismo que vuelve
  inofensivas las entregas duplicadas.
- Listados para el sweep de reconciliación.

Ningún método hace commit: el llamador define la transacción.

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.premium.enums import AttemptState, PaymentPlan, PaymentProvider
from app.modules.premium.errors import AlreadyAttached, AttemptNotFound
from app.modules.premium.models import PaymentAttempt
from app.modules.premium.plans import quantize_amount
from app.modules.premium.utils.datetime_helpers import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    """Resultado de transition_terminal."""
    applied: bool
    attempt_id: str
    target_state: AttemptState


class PaymentLedger:
    """Repositorio del ledger (tabla premium_payment_attempts)."""

    # -----------------------------------------------------------
    # Creación en dos fases
    # -----------------------------------------------------------
    async def create_pending(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        plan: PaymentPlan,
        amount: Decimal,
        currency: str,
        provider: PaymentProvider,
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        """Inserta un intento pending sin referencia de proveedor. Devuelve su id."""
        attempt = PaymentAttempt(
            user_id=str(user_id),
            plan=PaymentPlan(plan),
            amount=quantize_amount(amount),
            currency=currency.upper(),
            provider=PaymentProvider(provider),
            state=AttemptState.PENDING,
            attempt_metadata=dict(metadata or {}),
        )
        session.add(attempt)
        await session.flush()

        logger.info(
            "payment_attempt_created attempt_id=%s user_id=%s provider=%s plan=%s amount=%s %s",
            attempt.id,
            attempt.user_id,
            attempt.provider.value,
            attempt.plan.value,
            attempt.amount,
            attempt.currency,
        )
        return attempt.id

    async def attach_provider_reference(
        self,
        session: AsyncSession,
        attempt_id: str,
        provider_reference: str,
    ) -> None:
        """
        Asocia la referencia del proveedor al intento.

        Idempotente con la misma referencia. Con una distinta lanza
        AlreadyAttached; si el intento no existe lanza AttemptNotFound.
        """
        stmt = (
            update(PaymentAttempt)
            .where(
                PaymentAttempt.id == attempt_id,
                PaymentAttempt.provider_reference.is_(None),
            )
            .values(provider_reference=provider_reference, updated_at=utcnow())
        )
        result = await session.execute(stmt)
        if result.rowcount == 1:
            logger.debug(
                "provider_reference_attached attempt_id=%s ref=%s",
                attempt_id,
                provider_reference,
            )
            return

        attempt = await self.get(session, attempt_id)
        if attempt is None:
            raise AttemptNotFound(attempt_id)
        if attempt.provider_reference == provider_reference:
            return
        raise AlreadyAttached(attempt_id, attempt.provider_reference or "", provider_reference)

    # -----------------------------------------------------------
    # Búsquedas
    # -----------------------------------------------------------
    async def get(
        self,
        session: AsyncSession,
        attempt_id: str,
    ) -> Optional[PaymentAttempt]:
        return await session.get(PaymentAttempt, attempt_id, populate_existing=True)

    async def find_by_provider_reference(
        self,
        session: AsyncSession,
        provider: PaymentProvider,
        provider_reference: str,
    ) -> Optional[PaymentAttempt]:
        """Obtiene el intento por (provider, provider_reference) o None."""
        stmt = (
            select(PaymentAttempt)
            .where(
                PaymentAttempt.provider == PaymentProvider(provider),
                PaymentAttempt.provider_reference == provider_reference,
            )
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_reference_any_provider(
        self,
        session: AsyncSession,
        provider_reference: str,
    ) -> Optional[PaymentAttempt]:
        """Búsqueda por referencia sin proveedor (endpoints públicos de retorno)."""
        stmt = (
            select(PaymentAttempt)
            .where(PaymentAttempt.provider_reference == provider_reference)
            .order_by(PaymentAttempt.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    # -----------------------------------------------------------
    # Transición terminal (compare-and-swap sobre state)
    # -----------------------------------------------------------
    async def transition_terminal(
        self,
        session: AsyncSession,
        attempt_id: str,
        target_state: AttemptState,
        *,
        receipt_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        failure_reason: Optional[str] = None,
    ) -> TransitionResult:
        """
        Aplica pending -> target_state solo si el intento sigue pending.

        Returns:
            TransitionResult(applied=False) si otro canal ya lo cerró.
        """
        target_state = AttemptState(target_state)
        if not target_state.is_terminal:
            raise ValueError(f"{target_state} no es un estado terminal")

        values: dict[str, Any] = {"state": target_state, "updated_at": utcnow()}
        if target_state is AttemptState.COMPLETED:
            values["provider_receipt_id"] = receipt_id
        if failure_reason:
            values["failure_reason"] = failure_reason[:64]
        if metadata:
            current = await session.scalar(
                select(PaymentAttempt.attempt_metadata).where(PaymentAttempt.id == attempt_id)
            )
            values["attempt_metadata"] = {**(current or {}), **metadata}

        stmt = (
            update(PaymentAttempt)
            .where(
                PaymentAttempt.id == attempt_id,
                PaymentAttempt.state == AttemptState.PENDING,
            )
            .values(**values)
        )
        result = await session.execute(stmt)
        applied = result.rowcount == 1

        if applied:
            logger.info(
                "payment_attempt_transition attempt_id=%s state=%s reason=%s",
                attempt_id,
                target_state.value,
                failure_reason or "-",
            )
        else:
            logger.debug(
                "payment_attempt_transition_noop attempt_id=%s target=%s (ya terminal)",
                attempt_id,
                target_state.value,
            )
        return TransitionResult(applied=applied, attempt_id=attempt_id, target_state=target_state)

    # -----------------------------------------------------------
    # Listados para el sweep
    # -----------------------------------------------------------
    async def list_stale_pending(
        self,
        session: AsyncSession,
        provider: PaymentProvider,
        older_than: datetime,
        limit: int = 100,
        after: Optional[tuple[datetime, str]] = None,
    ) -> Sequence[PaymentAttempt]:
        """
        Pendientes con referencia, creados antes de `older_than` (más viejos primero).

        Paginación por keyset: `after` es el (created_at, id) del último intento
        de la página anterior.
        """
        conditions = [
            PaymentAttempt.provider == PaymentProvider(provider),
            PaymentAttempt.state == AttemptState.PENDING,
            PaymentAttempt.provider_reference.is_not(None),
            PaymentAttempt.created_at < older_than,
        ]
        if after is not None:
            after_created_at, after_id = after
            conditions.append(
                or_(
                    PaymentAttempt.created_at > after_created_at,
                    and_(
                        PaymentAttempt.created_at == after_created_at,
                        PaymentAttempt.id > after_id,
                    ),
                )
            )
        stmt = (
            select(PaymentAttempt)
            .where(*conditions)
            .order_by(PaymentAttempt.created_at.asc(), PaymentAttempt.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def list_pending_without_reference(
        self,
        session: AsyncSession,
        older_than: datetime,
        limit: int = 100,
    ) -> Sequence[PaymentAttempt]:
        """Pendientes huérfanos: la creación en el proveedor nunca devolvió referencia."""
        stmt = (
            select(PaymentAttempt)
            .where(
                PaymentAttempt.state == AttemptState.PENDING,
                PaymentAttempt.provider_reference.is_(None),
                PaymentAttempt.created_at < older_than,
            )
            .order_by(PaymentAttempt.created_at.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def count_pending_older_than(
        self,
        session: AsyncSession,
        provider: PaymentProvider,
        older_than: datetime,
    ) -> int:
        stmt = select(func.count(PaymentAttempt.id)).where(
            PaymentAttempt.provider == PaymentProvider(provider),
            PaymentAttempt.state == AttemptState.PENDING,
            PaymentAttempt.created_at < older_than,
        )
        return int(await session.scalar(stmt) or 0)

    async def list_by_user(
        self,
        session: AsyncSession,
        user_id: str,
        limit: int = 50,
    ) -> Sequence[PaymentAttempt]:
        stmt = (
            select(PaymentAttempt)
            .where(PaymentAttempt.user_id == str(user_id))
            .order_by(PaymentAttempt.created_at.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.scalars().all()


__all__ = ["PaymentLedger", "TransitionResult"]
