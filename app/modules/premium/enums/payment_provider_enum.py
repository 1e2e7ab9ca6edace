# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/enums/payment_provider_enum.py

Enum de proveedores de pago soportados.

Autor: Ixchel Beristain
Fecha: 20/11/2025
"""

from enum import StrEnum


class PaymentProvider(StrEnum):
    """Proveedor de pago externo."""

    PAYPAL = "paypal"
    MPESA = "mpesa"

    __db_enum_name__ = "premium_provider_enum"


__all__ = ["PaymentProvider"]

# Fin del archivo backend/app/modules/premium/enums/payment_provider_enum.py
