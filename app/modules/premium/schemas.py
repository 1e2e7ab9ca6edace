# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/schemas.py

Esquemas Pydantic para el módulo Premium.

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from app.modules.premium.enums import AttemptState, PaymentPlan, PaymentProvider


class PlanPriceOut(BaseModel):
    plan: PaymentPlan
    provider: PaymentProvider
    amount: Decimal
    currency: str
    months: int
    description: str


class PlansResponse(BaseModel):
    plans: List[PlanPriceOut]


class CheckoutRequest(BaseModel):
    """
    Request para iniciar el pago de un plan Premium.

    phone_number es obligatorio con M-Pesa (recibe el prompt STK).
    """

    plan: PaymentPlan = Field(description="Plan a comprar: monthly | annual")
    provider: PaymentProvider = Field(description="Proveedor: paypal | mpesa")
    phone_number: Optional[str] = Field(
        default=None,
        max_length=32,
        description="Teléfono M-Pesa (0712..., 712..., +254712...)",
    )

    @model_validator(mode="after")
    def _phone_required_for_mpesa(self) -> "CheckoutRequest":
        if self.provider is PaymentProvider.MPESA and not (self.phone_number or "").strip():
            raise ValueError("phone_number es obligatorio para M-Pesa")
        return self


class CheckoutResponse(BaseModel):
    """
    Respuesta al iniciar el pago.

    user_facing_action:
        {"type": "redirect", "url": ...}          (PayPal)
        {"type": "phone_prompt", "message": ...}  (M-Pesa)
    """

    attempt_id: str
    provider: PaymentProvider
    plan: PaymentPlan
    amount: Decimal
    currency: str
    user_facing_action: Dict[str, Any]


class PaymentStatusResponse(BaseModel):
    """Estado de un intento tras captura o consulta."""

    attempt_id: str
    state: AttemptState
    success: bool
    message: str


class PaymentHistoryItem(BaseModel):
    """Intento de pago del usuario (historial)."""

    attempt_id: str
    provider: PaymentProvider
    plan: PaymentPlan
    amount: Decimal
    currency: str
    state: AttemptState
    failure_reason: Optional[str] = None
    created_at: datetime


class PaymentHistoryResponse(BaseModel):
    payments: List[PaymentHistoryItem]


class EntitlementStatusResponse(BaseModel):
    user_id: str
    is_premium: bool
    is_active: bool
    premium_expires_at: Optional[datetime] = None


class WebhookAck(BaseModel):
    status: str = "received"
    action: Optional[str] = None


__all__ = [
    "PlanPriceOut",
    "PlansResponse",
    "CheckoutRequest",
    "CheckoutResponse",
    "PaymentStatusResponse",
    "PaymentHistoryItem",
    "PaymentHistoryResponse",
    "EntitlementStatusResponse",
    "WebhookAck",
]
