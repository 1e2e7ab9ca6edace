# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/routes/__init__.py

Ensambla los routers del módulo Premium bajo /api/premium.
"""

from fastapi import APIRouter

from .premium_routes import router as premium_router
from .webhook_routes import router as webhook_router

PREMIUM_PREFIX = "/api/premium"


def get_premium_router() -> APIRouter:
    router = APIRouter(prefix=PREMIUM_PREFIX)
    router.include_router(premium_router)
    router.include_router(webhook_router)
    return router


__all__ = ["get_premium_router", "PREMIUM_PREFIX"]
