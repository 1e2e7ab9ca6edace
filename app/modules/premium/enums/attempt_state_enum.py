# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/enums/attempt_state_enum.py

Enum de estados de un intento de pago (entrada del ledger).

Transiciones válidas:
    pending -> completed | failed | cancelled

Los estados terminales no admiten transición posterior.

Autor: Ixchel Beristain
Fecha: 20/11/2025
"""

from enum import StrEnum


class AttemptState(StrEnum):
    """Estado del intento en su ciclo de vida con el proveedor."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    __db_enum_name__ = "premium_attempt_state_enum"

    @property
    def is_terminal(self) -> bool:
        return self is not AttemptState.PENDING


TERMINAL_STATES = frozenset({
    AttemptState.COMPLETED,
    AttemptState.FAILED,
    AttemptState.CANCELLED,
})


__all__ = ["AttemptState", "TERMINAL_STATES"]

# Fin del archivo backend/app/modules/premium/enums/attempt_state_enum.py
