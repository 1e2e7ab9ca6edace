# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/utils/__init__.py
"""

from .datetime_helpers import utcnow, ensure_utc, to_iso8601
from .phone import normalize_msisdn

__all__ = ["utcnow", "ensure_utc", "to_iso8601", "normalize_msisdn"]
