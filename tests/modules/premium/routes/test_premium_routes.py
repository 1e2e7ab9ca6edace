# -*- coding: utf-8 -*-
"""
backend/tests/modules/premium/routes/test_premium_routes.py

Tests HTTP de /api/premium (catálogo, checkout, captura y estado).

Autor: DoxAI
Fecha: 2025-12-29
"""

from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import pytest
from prometheus_client import REGISTRY

from app.modules.premium.enums import PaymentProvider
from app.modules.premium.errors import ProviderUnavailable
from app.modules.premium.providers.base import Success


def _requests_total(path, status="200", method="GET"):
    return REGISTRY.get_sample_value(
        "http_requests_total", {"method": method, "path": path, "status": status}
    ) or 0.0


class TestPlans:

    @pytest.mark.asyncio
    async def test_lists_every_plan_and_provider(self, async_client):
        response = await async_client.get("/api/premium/plans")

        assert response.status_code == 200
        plans = response.json()["plans"]
        assert len(plans) == 4
        assert {(p["plan"], p["provider"]) for p in plans} == {
            ("monthly", "paypal"),
            ("annual", "paypal"),
            ("monthly", "mpesa"),
            ("annual", "mpesa"),
        }

    @pytest.mark.asyncio
    async def test_request_is_counted_by_route_template(self, async_client):
        before = _requests_total("/api/premium/plans")

        await async_client.get("/api/premium/plans")
        metrics = await async_client.get("/metrics")

        assert _requests_total("/api/premium/plans") == before + 1
        assert 'http_requests_total{method="GET",path="/api/premium/plans",status="200"}' in metrics.text

    @pytest.mark.asyncio
    async def test_path_parameters_stay_in_the_template(self, async_client, auth_headers, make_attempt):
        template = "/api/premium/payments/{attempt_id}/status"
        before = _requests_total(template)
        attempt_id = await make_attempt(reference="ORDER-1")

        await async_client.get(f"/api/premium/payments/{attempt_id}/status", headers=auth_headers())

        assert _requests_total(template) == before + 1
        assert _requests_total(f"/api/premium/payments/{attempt_id}/status") == 0.0


class TestCheckout:
    """POST /api/premium/checkout."""

    @pytest.mark.asyncio
    async def test_paypal_checkout(self, async_client, auth_headers, fake_paypal):
        fake_paypal.next_reference = "ORDER-1"

        response = await async_client.post(
            "/api/premium/checkout",
            json={"plan": "monthly", "provider": "paypal"},
            headers=auth_headers(),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["provider"] == "paypal"
        assert Decimal(str(body["amount"])) == Decimal("9.99")
        assert body["currency"] == "USD"
        assert body["user_facing_action"] == {
            "type": "redirect",
            "url": "https://paypal.test/approve/ORDER-1",
        }
        assert fake_paypal.calls_to("create_charge")[0]["user_id"] == "user-1"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, async_client):
        response = await async_client.post(
            "/api/premium/checkout", json={"plan": "monthly", "provider": "paypal"}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_phone(self, async_client, auth_headers, fake_mpesa):
        response = await async_client.post(
            "/api/premium/checkout",
            json={"plan": "monthly", "provider": "mpesa", "phone_number": "12345"},
            headers=auth_headers(),
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "INVALID_PHONE_NUMBER"
        assert fake_mpesa.calls == []

    @pytest.mark.asyncio
    async def test_mpesa_requires_phone(self, async_client, auth_headers):
        response = await async_client.post(
            "/api/premium/checkout",
            json={"plan": "annual", "provider": "mpesa"},
            headers=auth_headers(),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_plan(self, async_client, auth_headers):
        response = await async_client.post(
            "/api/premium/checkout",
            json={"plan": "weekly", "provider": "paypal"},
            headers=auth_headers(),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_provider_down(self, async_client, auth_headers, fake_paypal):
        fake_paypal.charge_error = ProviderUnavailable("paypal", "create_order", "timeout")

        response = await async_client.post(
            "/api/premium/checkout",
            json={"plan": "monthly", "provider": "paypal"},
            headers=auth_headers(),
        )

        assert response.status_code == 503
        assert response.json()["detail"]["error_code"] == "PAYMENT_PROVIDER_UNAVAILABLE"
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_disabled_provider(self, async_client, auth_headers, fake_mpesa):
        fake_mpesa.configured = False

        response = await async_client.post(
            "/api/premium/checkout",
            json={"plan": "monthly", "provider": "mpesa", "phone_number": "0712345678"},
            headers=auth_headers(),
        )

        assert response.status_code == 503
        assert response.json()["detail"]["error_code"] == "PAYMENT_PROVIDER_NOT_AVAILABLE"


class TestPayPalReturn:
    """GET /api/premium/paypal/success."""

    @pytest.mark.asyncio
    async def test_capture_and_redirect(self, async_client, fake_paypal, make_attempt):
        attempt_id = await make_attempt(reference="ORDER-1")
        fake_paypal.capture_results["ORDER-1"] = Success(
            provider_reference="ORDER-1",
            receipt_id="CAPTURE-1",
            amount_confirmed=Decimal("9.99"),
            currency_confirmed="USD",
        )

        response = await async_client.get(
            "/api/premium/paypal/success", params={"token": "ORDER-1", "PayerID": "PAYER-1"}
        )

        assert response.status_code == 303
        location = urlparse(response.headers["location"])
        assert f"{location.scheme}://{location.netloc}{location.path}" == "https://app.test/premium"
        assert parse_qs(location.query) == {"status": ["completed"], "attempt_id": [attempt_id]}

    @pytest.mark.asyncio
    async def test_unknown_order(self, async_client):
        response = await async_client.get("/api/premium/paypal/success", params={"token": "NOPE"})

        assert response.status_code == 303
        assert response.headers["location"] == "https://app.test/premium?status=not_found"


class TestCaptureAndStatus:

    @pytest.mark.asyncio
    async def test_capture_by_owner(self, async_client, auth_headers, fake_paypal, make_attempt):
        attempt_id = await make_attempt(reference="ORDER-1")
        fake_paypal.capture_results["ORDER-1"] = Success(provider_reference="ORDER-1", receipt_id="CAPTURE-1")

        response = await async_client.post(f"/api/premium/capture/{attempt_id}", headers=auth_headers())

        assert response.status_code == 200
        assert response.json()["state"] == "completed"
        assert response.json()["success"] is True

    @pytest.mark.asyncio
    async def test_payment_status_of_other_user(self, async_client, auth_headers, make_attempt):
        attempt_id = await make_attempt(user_id="owner", reference="ORDER-1")

        response = await async_client.get(
            f"/api/premium/payments/{attempt_id}/status", headers=auth_headers("intruder")
        )

        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "PAYMENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_payment_status_polls_provider(self, async_client, auth_headers, fake_mpesa, make_attempt):
        attempt_id = await make_attempt(provider=PaymentProvider.MPESA, reference="ws_CO_1")

        response = await async_client.get(f"/api/premium/payments/{attempt_id}/status", headers=auth_headers())

        assert response.status_code == 200
        assert response.json()["state"] == "pending"
        assert fake_mpesa.calls_to("poll_status") == ["ws_CO_1"]

    @pytest.mark.asyncio
    async def test_entitlement_status(self, async_client, auth_headers, fake_mpesa, make_attempt):
        before = (await async_client.get("/api/premium/status", headers=auth_headers())).json()
        assert before["is_active"] is False
        assert before["premium_expires_at"] is None

        attempt_id = await make_attempt(provider=PaymentProvider.MPESA, reference="ws_CO_1")
        fake_mpesa.poll_results["ws_CO_1"] = Success(provider_reference="ws_CO_1")
        await async_client.get(f"/api/premium/payments/{attempt_id}/status", headers=auth_headers())

        after = (await async_client.get("/api/premium/status", headers=auth_headers())).json()
        assert after["is_premium"] is True
        assert after["is_active"] is True
        assert after["premium_expires_at"] is not None


class TestPaymentHistory:
    """GET /api/premium/payments."""

    @pytest.mark.asyncio
    async def test_lists_only_own_attempts(self, async_client, auth_headers, make_attempt):
        first = await make_attempt(reference="ORDER-1")
        second = await make_attempt(provider=PaymentProvider.MPESA, reference="ws_CO_1")
        await make_attempt(user_id="someone-else", reference="ORDER-2")

        response = await async_client.get("/api/premium/payments", headers=auth_headers())

        assert response.status_code == 200
        payments = response.json()["payments"]
        assert {p["attempt_id"] for p in payments} == {first, second}
        created = [p["created_at"] for p in payments]
        assert created == sorted(created, reverse=True)
        by_id = {p["attempt_id"]: p for p in payments}
        assert by_id[second]["provider"] == "mpesa"
        assert by_id[second]["state"] == "pending"
        assert by_id[first]["failure_reason"] is None

    @pytest.mark.asyncio
    async def test_limit(self, async_client, auth_headers, make_attempt):
        for i in range(3):
            await make_attempt(reference=f"ORDER-{i}")

        response = await async_client.get(
            "/api/premium/payments", params={"limit": 2}, headers=auth_headers()
        )

        assert response.status_code == 200
        assert len(response.json()["payments"]) == 2

    @pytest.mark.asyncio
    async def test_requires_authentication(self, async_client):
        response = await async_client.get("/api/premium/payments")

        assert response.status_code == 401
