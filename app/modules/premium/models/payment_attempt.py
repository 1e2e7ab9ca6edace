# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/models/payment_attempt.py

Modelo ORM para la tabla premium_payment_attempts (ledger de intentos de pago).

Cada fila es un intento de checkout, desde su creación (pending) hasta su
único estado terminal. Nunca se borra: sirve de auditoría.

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.database.base import Base, str_enum_column
from app.modules.premium.enums import AttemptState, PaymentPlan, PaymentProvider
from app.modules.premium.utils.datetime_helpers import utcnow


def _new_attempt_id() -> str:
    return uuid4().hex


class PaymentAttempt(Base):
    """
    Intento de pago Premium.

    Invariantes:
    - (provider, provider_reference) es único.
    - state pasa por pending una vez y por un estado terminal una vez.
    - provider_receipt_id solo se fija al pasar a completed.
    """

    __tablename__ = "premium_payment_attempts"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=_new_attempt_id,
        doc="Identificador opaco (uuid4 hex). Inmutable.",
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        doc="Usuario dueño del intento (claim sub del JWT).",
    )

    plan: Mapped[PaymentPlan] = mapped_column(
        str_enum_column(PaymentPlan),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Monto cobrado en la moneda del proveedor.",
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
        doc="Moneda del monto (ISO 4217).",
    )

    provider: Mapped[PaymentProvider] = mapped_column(
        str_enum_column(PaymentProvider),
        nullable=False,
    )

    provider_reference: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
        doc="PayPal order id / M-Pesa CheckoutRequestID. Null hasta attach.",
    )

    state: Mapped[AttemptState] = mapped_column(
        str_enum_column(AttemptState),
        nullable=False,
        default=AttemptState.PENDING,
    )

    provider_receipt_id: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
        doc="Capture id PayPal / MpesaReceiptNumber. Solo en completed.",
    )

    failure_reason: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        doc="Código de razón para failed/cancelled (AMOUNT_MISMATCH, ...).",
    )

    # 'metadata' está reservado por DeclarativeBase; la columna conserva el nombre
    attempt_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
        doc="Anotaciones de auditoría (payer_email, phone). Nunca se leen en lógica.",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        UniqueConstraint(
            "provider",
            "provider_reference",
            name="uq_premium_attempts_provider_reference",
        ),
        Index("ix_premium_attempts_state_created", "state", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return AttemptState(self.state).is_terminal

    def __repr__(self) -> str:
        return (
            f"<PaymentAttempt(id={self.id}, user_id={self.user_id}, "
            f"provider={self.provider}, ref={self.provider_reference}, "
            f"state={self.state})>"
        )


__all__ = ["PaymentAttempt"]
