# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/utils/phone.py

Normalización de números telefónicos kenianos a formato MSISDN (2547XXXXXXXX)
requerido por Daraja en PartyA / PhoneNumber.

Autor: DoxAI
Fecha: 2025-12-13
"""

from __future__ import annotations

import re

from app.modules.premium.errors import InvalidPhoneNumber

KENYA_PREFIX = "254"
MSISDN_LENGTH = 12

_NON_DIGITS = re.compile(r"\D")


def normalize_msisdn(raw: str) -> str:
    """
    Normaliza un número a 254XXXXXXXXX.

    - Quita todo lo que no sea dígito ("+254 712-345 678" -> "254712345678")
    - 0712345678 -> 254712345678
    - 712345678  -> 254712345678
    - 254712345678 se conserva

    Raises:
        InvalidPhoneNumber: si el resultado no tiene 12 dígitos.
    """
    digits = _NON_DIGITS.sub("", raw or "")

    if digits.startswith("0"):
        digits = KENYA_PREFIX + digits[1:]
    elif not digits.startswith(KENYA_PREFIX):
        digits = KENYA_PREFIX + digits

    if len(digits) != MSISDN_LENGTH:
        raise InvalidPhoneNumber(f"número telefónico inválido: {raw!r}")
    return digits


__all__ = ["normalize_msisdn", "KENYA_PREFIX"]
