# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/repositories/__init__.py

Repositorios del módulo Premium (ledger + entitlement).
"""

from .payment_ledger import PaymentLedger, TransitionResult
from .entitlement_store import EntitlementStore, entitlement_is_active

__all__ = [
    "PaymentLedger",
    "TransitionResult",
    "EntitlementStore",
    "entitlement_is_active",
]
