# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/models/__init__.py

Modelos ORM del módulo Premium.
"""

from .payment_attempt import PaymentAttempt
from .user_entitlement import UserEntitlement

__all__ = ["PaymentAttempt", "UserEntitlement"]
