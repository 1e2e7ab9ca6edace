# -*- coding: utf-8 -*-
"""
backend/tests/modules/premium/routes/test_require_premium.py

Tests de la dependencia require_premium sobre una ruta protegida de prueba.

Autor: DoxAI
Fecha: 2025-12-29
"""

from datetime import timedelta

import pytest
from fastapi import Depends
from httpx import ASGITransport, AsyncClient

from app.modules.premium.enums import PaymentPlan
from app.modules.premium.repositories import EntitlementStore
from app.modules.premium.routes.dependencies import require_premium
from app.modules.premium.utils.datetime_helpers import utcnow

PROTECTED_PATH = "/api/test/premium-only"


@pytest.fixture
def protected_app(app):
    @app.get(PROTECTED_PATH)
    async def premium_only(user_id: str = Depends(require_premium)):
        return {"user_id": user_id}

    return app


@pytest.fixture
async def protected_client(protected_app):
    transport = ASGITransport(app=protected_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def _grant(session_factory, user_id="user-1", now=None):
    async with session_factory() as session:
        await EntitlementStore().extend(session, user_id, PaymentPlan.MONTHLY, now=now)
        await session.commit()


class TestRequirePremium:

    @pytest.mark.asyncio
    async def test_without_entitlement_is_forbidden(self, protected_client, auth_headers):
        response = await protected_client.get(PROTECTED_PATH, headers=auth_headers())

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["error_code"] == "PREMIUM_REQUIRED"
        assert detail["requires_premium"] is True

    @pytest.mark.asyncio
    async def test_active_entitlement_passes(self, protected_client, auth_headers, session_factory):
        await _grant(session_factory)

        response = await protected_client.get(PROTECTED_PATH, headers=auth_headers())

        assert response.status_code == 200
        assert response.json() == {"user_id": "user-1"}

    @pytest.mark.asyncio
    async def test_expired_entitlement_is_forbidden(self, protected_client, auth_headers, session_factory):
        await _grant(session_factory, now=utcnow() - timedelta(days=90))

        response = await protected_client.get(PROTECTED_PATH, headers=auth_headers())

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_other_users_entitlement_does_not_count(
        self, protected_client, auth_headers, session_factory
    ):
        await _grant(session_factory, user_id="someone-else")

        response = await protected_client.get(PROTECTED_PATH, headers=auth_headers())

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_requires_authentication(self, protected_client):
        response = await protected_client.get(PROTECTED_PATH)

        assert response.status_code == 401
