# -*- coding: utf-8 -*-
"""
backend/app/shared/middleware/__init__.py

Módulo de middlewares compartidos.
"""

from .exception_handler import (
    JSONExceptionMiddleware,
    error_response,
    get_request_id,
    install_premium_exception_handlers,
)

__all__ = [
    "JSONExceptionMiddleware",
    "error_response",
    "get_request_id",
    "install_premium_exception_handlers",
]
