# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/services/__init__.py

Servicios del módulo Premium.
"""

from .reconciliation_service import (
    ReconcileAction,
    ReconciliationEngine,
    ReconciliationResult,
    amounts_match,
)
from .checkout_service import (
    AttemptStatusResult,
    CheckoutResult,
    CheckoutService,
    fetch_outcome,
)
from .callback_service import build_ack, handle_provider_callback

__all__ = [
    "ReconcileAction",
    "ReconciliationEngine",
    "ReconciliationResult",
    "amounts_match",
    "AttemptStatusResult",
    "CheckoutResult",
    "CheckoutService",
    "fetch_outcome",
    "build_ack",
    "handle_provider_callback",
]
