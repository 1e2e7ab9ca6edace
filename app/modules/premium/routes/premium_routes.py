# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/routes/premium_routes.py

Rutas públicas y autenticadas del checkout Premium.

Endpoints (prefijo /api/premium):
- GET  /plans
- POST /checkout
- GET  /paypal/success?token=<order id>
- POST /capture/{attempt_id}
- GET  /payments
- GET  /payments/{attempt_id}/status
- GET  /status

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.auth.dependencies import get_current_user_id
from app.shared.config.settings_premium import PremiumSettings
from app.shared.database.database import get_async_session
from app.modules.premium.errors import AttemptNotFound
from app.modules.premium.plans import list_plan_prices
from app.modules.premium.repositories import EntitlementStore, PaymentLedger, entitlement_is_active
from app.modules.premium.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    EntitlementStatusResponse,
    PaymentHistoryItem,
    PaymentHistoryResponse,
    PaymentStatusResponse,
    PlanPriceOut,
    PlansResponse,
)
from app.modules.premium.services import AttemptStatusResult, CheckoutService
from app.modules.premium.utils.datetime_helpers import ensure_utc
from .dependencies import (
    get_checkout_service,
    get_entitlement_store,
    get_payment_ledger,
    get_settings_dep,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["premium"])


def _status_response(result: AttemptStatusResult) -> PaymentStatusResponse:
    return PaymentStatusResponse(
        attempt_id=result.attempt_id,
        state=result.state,
        success=result.success,
        message=result.message,
    )


@router.get("/plans", response_model=PlansResponse)
async def get_plans(settings: PremiumSettings = Depends(get_settings_dep)) -> PlansResponse:
    """Catálogo de planes por proveedor y moneda."""
    return PlansResponse(
        plans=[PlanPriceOut(**price.model_dump()) for price in list_plan_prices(settings)]
    )


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_checkout(
    payload: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_async_session),
    service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutResponse:
    """
    Inicia el pago de un plan.

    - 201: intento creado; el cliente sigue user_facing_action
    - 400: teléfono M-Pesa inválido
    - 503: el proveedor no pudo iniciar el cobro (reintentar)
    """
    result = await service.initiate_charge(
        session,
        user_id=user_id,
        plan=payload.plan,
        provider=payload.provider,
        phone_number=payload.phone_number,
    )
    return CheckoutResponse(
        attempt_id=result.attempt_id,
        provider=result.provider,
        plan=result.plan,
        amount=result.amount,
        currency=result.currency,
        user_facing_action=result.user_facing_action,
    )


@router.get("/paypal/success", include_in_schema=False)
async def paypal_success(
    token: str = Query(..., min_length=1, description="PayPal order id"),
    payer_id: Optional[str] = Query(default=None, alias="PayerID"),
    session: AsyncSession = Depends(get_async_session),
    service: CheckoutService = Depends(get_checkout_service),
    settings: PremiumSettings = Depends(get_settings_dep),
) -> RedirectResponse:
    """
    return_url de PayPal: captura la orden y redirige al frontend.

    El webhook y el sweep cubren el caso en que el comprador nunca vuelve.
    """
    try:
        result = await service.handle_capture_return(session, provider_reference=token)
        query = {"status": result.state.value, "attempt_id": result.attempt_id}
    except AttemptNotFound:
        logger.warning("paypal_return_unknown_order order_id=%s payer_id=%s", token, payer_id or "-")
        query = {"status": "not_found"}

    return RedirectResponse(
        url=f"{settings.frontend_url}/premium?{urlencode(query)}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


@router.post("/capture/{attempt_id}", response_model=PaymentStatusResponse)
async def capture_payment(
    attempt_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_async_session),
    service: CheckoutService = Depends(get_checkout_service),
) -> PaymentStatusResponse:
    """Captura explícita (solo el dueño del intento)."""
    result = await service.handle_capture_return(session, attempt_id=attempt_id, user_id=user_id)
    return _status_response(result)


@router.get("/payments", response_model=PaymentHistoryResponse)
async def payment_history(
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_async_session),
    ledger: PaymentLedger = Depends(get_payment_ledger),
) -> PaymentHistoryResponse:
    """Intentos de pago del usuario actual, más recientes primero."""
    rows = await ledger.list_by_user(session, user_id, limit=limit)
    return PaymentHistoryResponse(
        payments=[
            PaymentHistoryItem(
                attempt_id=row.id,
                provider=row.provider,
                plan=row.plan,
                amount=row.amount,
                currency=row.currency,
                state=row.state,
                failure_reason=row.failure_reason,
                created_at=ensure_utc(row.created_at),
            )
            for row in rows
        ]
    )


@router.get("/payments/{attempt_id}/status", response_model=PaymentStatusResponse)
async def payment_status(
    attempt_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_async_session),
    service: CheckoutService = Depends(get_checkout_service),
) -> PaymentStatusResponse:
    """Consulta al proveedor y reconcilia (polling del frontend)."""
    result = await service.poll_and_reconcile_once(session, attempt_id=attempt_id, user_id=user_id)
    return _status_response(result)


@router.get("/status", response_model=EntitlementStatusResponse)
async def premium_status(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_async_session),
    store: EntitlementStore = Depends(get_entitlement_store),
) -> EntitlementStatusResponse:
    """Entitlement Premium del usuario actual."""
    row = await store.get(session, user_id)
    return EntitlementStatusResponse(
        user_id=user_id,
        is_premium=bool(row and row.is_premium),
        is_active=entitlement_is_active(row),
        premium_expires_at=ensure_utc(row.premium_expires_at) if row else None,
    )


__all__ = ["router"]
