# -*- coding: utf-8 -*-
"""
backend/tests/shared/middleware/test_exception_handler.py

Tests del middleware JSON de errores y de los handlers de errores Premium.

Autor: DoxAI
Fecha: 2026-01-28
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.shared.middleware import JSONExceptionMiddleware, install_premium_exception_handlers
from app.modules.premium.errors import (
    AttemptNotFound,
    InvalidCallback,
    InvalidPhoneNumber,
    ProviderNotConfigured,
    ProviderUnavailable,
)


def _build_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(JSONExceptionMiddleware)
    install_premium_exception_handlers(app)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    @app.get("/ok")
    async def ok():
        return {"ok": True}

    errors = {
        "unavailable": ProviderUnavailable("paypal", "create_order", "timeout"),
        "not-configured": ProviderNotConfigured("mpesa"),
        "phone": InvalidPhoneNumber("número telefónico inválido: '123'"),
        "not-found": AttemptNotFound("attempt-1"),
        "callback": InvalidCallback("mpesa", "callback token inválido"),
    }

    @app.get("/raise/{name}")
    async def raise_error(name: str):
        raise errors[name]

    return app


@pytest.fixture
async def client():
    transport = ASGITransport(app=_build_app())
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


class TestJSONExceptionMiddleware:

    @pytest.mark.asyncio
    async def test_unhandled_exception_returns_json_500(self, client):
        response = await client.get("/boom")

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        detail = response.json()["detail"]
        assert detail["error_code"] == "INTERNAL_SERVER_ERROR"
        assert detail["request_id"] == response.headers["X-Request-ID"]
        assert "kaboom" not in response.text

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/boom", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.json()["detail"]["request_id"] == "req-123"

    @pytest.mark.asyncio
    async def test_successful_response_gets_request_id(self, client):
        response = await client.get("/ok", headers={"X-Correlation-ID": "corr-1"})

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "corr-1"


class TestPremiumExceptionHandlers:

    @pytest.mark.parametrize(
        "name,status,error_code",
        [
            ("unavailable", 503, "PAYMENT_PROVIDER_UNAVAILABLE"),
            ("not-configured", 503, "PAYMENT_PROVIDER_NOT_AVAILABLE"),
            ("phone", 400, "INVALID_PHONE_NUMBER"),
            ("not-found", 404, "PAYMENT_NOT_FOUND"),
            ("callback", 401, "INVALID_CALLBACK"),
        ],
    )
    @pytest.mark.asyncio
    async def test_error_mapping(self, client, name, status, error_code):
        response = await client.get(f"/raise/{name}", headers={"X-Request-ID": "req-9"})

        assert response.status_code == status
        assert response.json()["detail"]["error_code"] == error_code
        assert response.json()["detail"]["request_id"] == "req-9"
