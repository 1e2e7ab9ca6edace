# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/models/user_entitlement.py

Modelo ORM para premium_user_entitlements: bandera premium + expiración por
usuario. Solo el motor de reconciliación (vía EntitlementStore) escribe aquí.

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.base import Base
from app.modules.premium.utils.datetime_helpers import utcnow


class UserEntitlement(Base):
    __tablename__ = "premium_user_entitlements"

    user_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    is_premium: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    premium_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Null con is_premium=True: concesión sin vencimiento (legacy/manual).",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<UserEntitlement(user_id={self.user_id}, is_premium={self.is_premium}, "
            f"expires_at={self.premium_expires_at})>"
        )


__all__ = ["UserEntitlement"]
