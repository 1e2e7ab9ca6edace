# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/routes/dependencies.py

Dependencias FastAPI del módulo Premium.

El registro de adaptadores vive en app.state (se construye en el lifespan);
los tests lo reemplazan con app.dependency_overrides.

require_premium es el punto de entrada para rutas de contenido exclusivo de
otros módulos: 401 sin sesión, 403 con requires_premium si el entitlement no
está activo.

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.auth.dependencies import get_current_user_id
from app.shared.database.database import get_async_session

from app.shared.config.settings_premium import PremiumSettings, get_premium_settings
from app.modules.premium.providers.registry import ProviderRegistry
from app.modules.premium.repositories import EntitlementStore, PaymentLedger
from app.modules.premium.services import CheckoutService, ReconciliationEngine


def get_provider_registry(request: Request) -> ProviderRegistry:
    registry = getattr(request.app.state, "premium_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error_code": "PAYMENTS_NOT_READY", "message": "Payments not initialized"},
        )
    return registry


def get_settings_dep() -> PremiumSettings:
    return get_premium_settings()


def get_reconciliation_engine() -> ReconciliationEngine:
    return ReconciliationEngine()


def get_checkout_service(
    registry: ProviderRegistry = Depends(get_provider_registry),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
    settings: PremiumSettings = Depends(get_settings_dep),
) -> CheckoutService:
    return CheckoutService(registry, engine=engine, settings=settings)


def get_entitlement_store() -> EntitlementStore:
    return EntitlementStore()


def get_payment_ledger() -> PaymentLedger:
    return PaymentLedger()


async def require_premium(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_async_session),
    store: EntitlementStore = Depends(get_entitlement_store),
) -> str:
    """Exige Premium activo. Devuelve el user_id."""
    if not await store.is_active(session, user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error_code": "PREMIUM_REQUIRED",
                "message": "Premium subscription required",
                "requires_premium": True,
            },
        )
    return user_id


__all__ = [
    "get_provider_registry",
    "get_settings_dep",
    "get_reconciliation_engine",
    "get_checkout_service",
    "get_entitlement_store",
    "get_payment_ledger",
    "require_premium",
]
