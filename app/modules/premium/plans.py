# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/plans.py

Catálogo de planes Premium (source of truth).

Cada proveedor cobra en su moneda nativa:
- PayPal: USD (9.99 mensual / 99.99 anual)
- M-Pesa: KES, montos enteros (Daraja no acepta decimales)

Los precios son configurables vía PremiumSettings; la duración de cada plan
es fija: mensual = +1 mes calendario, anual = +1 año calendario.

Autor: DoxAI
Fecha: 2025-12-13
"""

from __future__ import annotations

import calendar
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from pydantic import BaseModel

from app.shared.config.settings_premium import PremiumSettings, get_premium_settings
from app.modules.premium.enums import PaymentPlan, PaymentProvider


# Moneda nativa por proveedor
PROVIDER_CURRENCY: Dict[PaymentProvider, str] = {
    PaymentProvider.PAYPAL: "USD",
    PaymentProvider.MPESA: "KES",
}

PLAN_MONTHS: Dict[PaymentPlan, int] = {
    PaymentPlan.MONTHLY: 1,
    PaymentPlan.ANNUAL: 12,
}

PLAN_DESCRIPTIONS: Dict[PaymentPlan, str] = {
    PaymentPlan.MONTHLY: "NextScene Premium - Monthly",
    PaymentPlan.ANNUAL: "NextScene Premium - Annual",
}

_CENTS = Decimal("0.01")


class PlanPrice(BaseModel):
    """Precio de un plan para un proveedor concreto."""
    plan: PaymentPlan
    provider: PaymentProvider
    amount: Decimal
    currency: str
    months: int
    description: str


def quantize_amount(value: Decimal | str | float | int) -> Decimal:
    """Normaliza un monto a 2 decimales (ROUND_HALF_UP)."""
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def get_plan_price(
    plan: PaymentPlan,
    provider: PaymentProvider,
    settings: Optional[PremiumSettings] = None,
) -> PlanPrice:
    """Resuelve monto y moneda de `plan` para `provider`."""
    s = settings or get_premium_settings()
    plan = PaymentPlan(plan)
    provider = PaymentProvider(provider)

    if provider is PaymentProvider.PAYPAL:
        amount = s.premium_monthly_usd if plan is PaymentPlan.MONTHLY else s.premium_annual_usd
    else:
        amount = s.premium_monthly_kes if plan is PaymentPlan.MONTHLY else s.premium_annual_kes

    return PlanPrice(
        plan=plan,
        provider=provider,
        amount=quantize_amount(amount),
        currency=PROVIDER_CURRENCY[provider],
        months=PLAN_MONTHS[plan],
        description=PLAN_DESCRIPTIONS[plan],
    )


def list_plan_prices(settings: Optional[PremiumSettings] = None) -> List[PlanPrice]:
    return [
        get_plan_price(plan, provider, settings)
        for provider in PaymentProvider
        for plan in PaymentPlan
    ]


def add_months(moment: datetime, months: int) -> datetime:
    """
    Suma meses calendario conservando hora y zona.

    Si el día no existe en el mes destino se ajusta al último día
    (31-ene + 1 mes = 28/29-feb).
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def plan_end(start: datetime, plan: PaymentPlan) -> datetime:
    """Fin del periodo que `plan` otorga a partir de `start`."""
    return add_months(start, PLAN_MONTHS[PaymentPlan(plan)])


__all__ = [
    "PlanPrice",
    "PROVIDER_CURRENCY",
    "PLAN_MONTHS",
    "PLAN_DESCRIPTIONS",
    "quantize_amount",
    "get_plan_price",
    "list_plan_prices",
    "add_months",
    "plan_end",
]

# Fin del archivo backend/app/modules/premium/plans.py
