# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/providers/base.py

Contrato común de los adaptadores de proveedor y forma normalizada de los
resultados (Outcome).

Outcome es una variante etiquetada:
    Success{provider_reference, receipt_id, amount_confirmed, currency_confirmed}
    Failure{provider_reference, reason_code, cancelled}
    Pending{provider_reference, needs_capture}

Autor: DoxAI
Fecha: 2025-12-13
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Optional, Union

from app.modules.premium.enums import PaymentPlan, PaymentProvider


# =============================================================================
# OUTCOMES
# =============================================================================

@dataclass(frozen=True)
class Success:
    provider_reference: str
    receipt_id: Optional[str] = None
    # None: el canal no informa monto (p. ej. consulta STK autenticada)
    amount_confirmed: Optional[Decimal] = None
    currency_confirmed: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    kind = "success"


@dataclass(frozen=True)
class Failure:
    provider_reference: str
    reason_code: str
    cancelled: bool = False

    kind = "failure"


@dataclass(frozen=True)
class Pending:
    provider_reference: str
    # PayPal: orden aprobada por el comprador pero aún sin capturar
    needs_capture: bool = False

    kind = "pending"


Outcome = Union[Success, Failure, Pending]


# =============================================================================
# RESULTADO DE CREACIÓN
# =============================================================================

@dataclass(frozen=True)
class ChargeResult:
    """
    Resultado de create_charge.

    user_facing_action:
        {"type": "redirect", "url": ...}          (PayPal)
        {"type": "phone_prompt", "message": ...}  (M-Pesa)
    """
    provider_reference: str
    user_facing_action: dict[str, Any]
    raw_status: Optional[str] = None


# =============================================================================
# CONTRATO
# =============================================================================

class PaymentProviderAdapter(abc.ABC):
    """Adaptador de un proveedor de pago concreto."""

    provider: PaymentProvider

    @property
    @abc.abstractmethod
    def is_configured(self) -> bool:
        """True si hay credenciales suficientes para operar."""

    @abc.abstractmethod
    async def create_charge(
        self,
        *,
        attempt_id: str,
        user_id: str,
        plan: PaymentPlan,
        amount: Decimal,
        currency: str,
        phone_number: Optional[str] = None,
    ) -> ChargeResult:
        """Inicia la transacción en el proveedor. Lanza ProviderUnavailable."""

    @abc.abstractmethod
    async def poll_status(self, provider_reference: str) -> Outcome:
        """Consulta el estado actual. Lanza ProviderUnavailable."""

    @abc.abstractmethod
    async def parse_callback(
        self,
        raw_payload: bytes,
        headers: Mapping[str, str],
        params: Optional[Mapping[str, str]] = None,
    ) -> Outcome:
        """Autentica y normaliza un callback. Lanza InvalidCallback."""

    async def capture_return(self, provider_reference: str) -> Outcome:
        """
        Captura explícita tras la aprobación del usuario.

        Por defecto equivale a poll_status (proveedores sin paso de captura).
        """
        return await self.poll_status(provider_reference)

    async def aclose(self) -> None:
        """Libera recursos (clientes HTTP)."""
        return None


__all__ = [
    "Success",
    "Failure",
    "Pending",
    "Outcome",
    "ChargeResult",
    "PaymentProviderAdapter",
]
