# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/enums/__init__.py

Enums del módulo Premium.
"""

from .payment_plan_enum import PaymentPlan
from .payment_provider_enum import PaymentProvider
from .attempt_state_enum import AttemptState, TERMINAL_STATES

__all__ = [
    "PaymentPlan",
    "PaymentProvider",
    "AttemptState",
    "TERMINAL_STATES",
]
