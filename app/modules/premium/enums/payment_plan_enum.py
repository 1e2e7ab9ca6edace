# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/enums/payment_plan_enum.py

Enum de planes de suscripción Premium.

Autor: Ixchel Beristain
Fecha: 20/11/2025
"""

from enum import StrEnum


class PaymentPlan(StrEnum):
    """Plan comprado por el usuario."""

    MONTHLY = "monthly"
    ANNUAL = "annual"

    __db_enum_name__ = "premium_plan_enum"


__all__ = ["PaymentPlan"]

# Fin del archivo backend/app/modules/premium/enums/payment_plan_enum.py
