# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/errors.py

Taxonomía de errores del módulo Premium.

- ProviderUnavailable: transitorio (red, timeout, 5xx). Nunca se escribe como
  estado terminal en el ledger.
- InvalidCallback: autenticación/firma inválida o payload ilegible en un
  callback entrante. Se descarta y se responde no-éxito al proveedor.
- AlreadyAttached / AttemptNotFound: señales internas del ledger.
- InvalidPhoneNumber / ProviderNotConfigured: errores de entrada/config al
  iniciar un cobro.

Autor: DoxAI
Fecha: 2025-12-13
"""

from __future__ import annotations

from typing import Optional


# Códigos de razón persistidos en failure_reason
REASON_AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
REASON_PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
REASON_PROVIDER_REFERENCE_MISSING = "PROVIDER_REFERENCE_MISSING"
REASON_USER_CANCELLED = "USER_CANCELLED"
REASON_ABANDONED = "ABANDONED"


class PremiumError(Exception):
    """Base de los errores del módulo Premium."""
    pass


class ProviderUnavailable(PremiumError):
    """El proveedor no respondió a tiempo o devolvió un error transitorio."""

    def __init__(
        self,
        provider: str,
        operation: str,
        detail: str = "",
        status_code: Optional[int] = None,
    ) -> None:
        self.provider = provider
        self.operation = operation
        self.detail = detail
        self.status_code = status_code
        msg = f"{provider} unavailable during {operation}"
        if status_code is not None:
            msg += f" (HTTP {status_code})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class InvalidCallback(PremiumError):
    """Callback/webhook no autenticado o malformado."""

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"invalid {provider} callback: {reason}")


class AlreadyAttached(PremiumError):
    """El intento ya tiene una referencia de proveedor distinta."""

    def __init__(self, attempt_id: str, existing: str, requested: str) -> None:
        self.attempt_id = attempt_id
        self.existing = existing
        self.requested = requested
        super().__init__(
            f"attempt {attempt_id} already attached to {existing!r}, refused {requested!r}"
        )


class AttemptNotFound(PremiumError):
    """No existe el intento solicitado."""
    pass


class InvalidPhoneNumber(PremiumError, ValueError):
    """Número telefónico no normalizable a formato MSISDN keniano."""
    pass


class ProviderNotConfigured(PremiumError):
    """Proveedor deshabilitado o sin credenciales."""
    pass


__all__ = [
    "PremiumError",
    "ProviderUnavailable",
    "InvalidCallback",
    "AlreadyAttached",
    "AttemptNotFound",
    "InvalidPhoneNumber",
    "ProviderNotConfigured",
    "REASON_AMOUNT_MISMATCH",
    "REASON_PROVIDER_UNAVAILABLE",
    "REASON_PROVIDER_REFERENCE_MISSING",
    "REASON_USER_CANCELLED",
    "REASON_ABANDONED",
]
