# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/repositories/entitlement_store.py

Store de entitlement Premium por usuario.

Regla de apilamiento (stacking):
    premium_expires_at = max(now, premium_expires_at_actual) + duración_del_plan

Una renovación nunca acorta el tiempo restante y las compras consecutivas se
acumulan. Una concesión sin vencimiento (is_premium=True, expires_at=None) no
se toca.

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.premium.enums import PaymentPlan
from app.modules.premium.models import UserEntitlement
from app.modules.premium.plans import plan_end
from app.modules.premium.utils.datetime_helpers import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class EntitlementStore:
    """Lectura/escritura de premium_user_entitlements."""

    async def get(
        self,
        session: AsyncSession,
        user_id: str,
    ) -> Optional[UserEntitlement]:
        return await session.get(UserEntitlement, str(user_id), populate_existing=True)

    async def _get_for_update(
        self,
        session: AsyncSession,
        user_id: str,
    ) -> Optional[UserEntitlement]:
        stmt = (
            select(UserEntitlement)
            .where(UserEntitlement.user_id == str(user_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_or_create_locked(
        self,
        session: AsyncSession,
        user_id: str,
    ) -> UserEntitlement:
        row = await self._get_for_update(session, user_id)
        if row is not None:
            return row

        # INSERT ... ON CONFLICT DO NOTHING: otro intento del mismo usuario
        # puede crear la fila en paralelo
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(UserEntitlement)
        elif dialect == "sqlite":
            stmt = sqlite_insert(UserEntitlement)
        else:
            row = UserEntitlement(user_id=str(user_id), is_premium=False)
            session.add(row)
            await session.flush()
            return row

        await session.execute(
            stmt.values(user_id=str(user_id), is_premium=False, updated_at=utcnow())
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        row = await self._get_for_update(session, user_id)
        if row is None:
            raise RuntimeError(f"entitlement row for {user_id} vanished after upsert")
        return row

    async def extend(
        self,
        session: AsyncSession,
        user_id: str,
        plan: PaymentPlan,
        now: Optional[datetime] = None,
    ) -> Optional[datetime]:
        """
        Extiende el entitlement según el plan. No hace commit.

        Returns:
            Nueva fecha de expiración (None si la concesión no vence).
        """
        now = ensure_utc(now) if now is not None else utcnow()
        row = await self._get_or_create_locked(session, user_id)

        current = ensure_utc(row.premium_expires_at)
        if row.is_premium and current is None:
            logger.info(
                "entitlement_extend_skipped user_id=%s reason=lifetime_grant plan=%s",
                user_id,
                PaymentPlan(plan).value,
            )
            return None

        base = now
        if row.is_premium and current is not None and current > now:
            base = current

        new_expires_at = plan_end(base, plan)
        row.is_premium = True
        row.premium_expires_at = new_expires_at
        row.updated_at = now
        await session.flush()

        logger.info(
            "entitlement_extended user_id=%s plan=%s previous=%s new_expires_at=%s",
            user_id,
            PaymentPlan(plan).value,
            current.isoformat() if current else None,
            new_expires_at.isoformat(),
        )
        return new_expires_at

    async def is_active(
        self,
        session: AsyncSession,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """isPremium && (expires_at is None || now < expires_at). Solo lectura."""
        row = await self.get(session, user_id)
        return entitlement_is_active(row, now)


def entitlement_is_active(
    row: Optional[UserEntitlement],
    now: Optional[datetime] = None,
) -> bool:
    if row is None or not row.is_premium:
        return False
    expires_at = ensure_utc(row.premium_expires_at)
    if expires_at is None:
        return True
    now = ensure_utc(now) if now is not None else utcnow()
    return now < expires_at


__all__ = ["EntitlementStore", "entitlement_is_active"]
