# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/providers/__init__.py

Adaptadores de proveedores de pago (PayPal, M-Pesa).
"""

from .base import (
    ChargeResult,
    Failure,
    Outcome,
    PaymentProviderAdapter,
    Pending,
    Success,
)
from .mpesa_provider import MpesaProvider
from .paypal_provider import PayPalProvider
from .registry import ProviderRegistry, build_provider_registry

__all__ = [
    "ChargeResult",
    "Failure",
    "Outcome",
    "PaymentProviderAdapter",
    "Pending",
    "Success",
    "MpesaProvider",
    "PayPalProvider",
    "ProviderRegistry",
    "build_provider_registry",
]
