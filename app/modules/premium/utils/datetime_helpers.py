# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/utils/datetime_helpers.py

Utilidades para manejo consistente de timestamps UTC.

SQLite (tests) devuelve datetimes naive aunque la columna sea
DateTime(timezone=True); ensure_utc normaliza antes de comparar.

Autor: Ixchel Beristáin
Fecha: 26/10/2025
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """
    Retorna el timestamp UTC actual (timezone-aware).

    Examples:
        >>> now = utcnow()
        >>> now.tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Asegura que un datetime sea UTC timezone-aware (None pasa tal cual).

    Examples:
        >>> dt_naive = datetime(2025, 10, 26, 14, 30, 0)
        >>> ensure_utc(dt_naive).tzinfo == timezone.utc
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    if dt.tzinfo != timezone.utc:
        return dt.astimezone(timezone.utc)
    return dt


def to_iso8601(dt: Optional[datetime]) -> Optional[str]:
    """Serializa a ISO 8601 con sufijo Z (None si no hay fecha)."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


__all__ = ["utcnow", "ensure_utc", "to_iso8601"]
