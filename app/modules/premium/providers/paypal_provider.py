# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/providers/paypal_provider.py

Adaptador PayPal (Orders v2) para pagos Premium.

Flujo:
1. create_charge: POST /v2/checkout/orders (intent CAPTURE). Devuelve el
   order id como provider_reference y el link "approve" para redirigir.
2. El comprador aprueba en PayPal y vuelve a /api/premium/paypal/success.
3. capture_return: POST /v2/checkout/orders/{id}/capture. Idempotente:
   ORDER_ALREADY_CAPTURED se resuelve consultando la orden.
4. Webhooks: firma verificada vía POST /v1/notifications/verify-webhook-signature.

Autor: DoxAI
Fecha: 2025-12-13
"""
from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Mapping, Optional, Tuple

import httpx

from app.shared.config.settings_premium import PremiumSettings, get_premium_settings
from app.modules.premium.enums import PaymentPlan, PaymentProvider
from app.modules.premium.errors import InvalidCallback, ProviderUnavailable
from app.modules.premium.plans import PLAN_DESCRIPTIONS, quantize_amount
from app.modules.premium.providers.base import (
    ChargeResult,
    Failure,
    Outcome,
    PaymentProviderAdapter,
    Pending,
    Success,
)
from app.modules.premium.providers.http_client import ProviderHttpClient, build_timeout
from app.modules.premium.providers.token_cache import AccessTokenCache
from app.modules.premium.providers.webhook_security import allow_insecure_webhooks, lower_headers

logger = logging.getLogger(__name__)

PAYPAL_SANDBOX_URL = "https://api-m.sandbox.paypal.com"
PAYPAL_LIVE_URL = "https://api-m.paypal.com"

# Headers requeridos para verificar la firma de un webhook
WEBHOOK_HEADER_MAP = {
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
    "cert_url": "paypal-cert-url",
    "auth_algo": "paypal-auth-algo",
}

# Estados de orden que aún pueden completarse
_ORDER_PENDING_STATES = frozenset({"CREATED", "SAVED", "PAYER_ACTION_REQUIRED"})


def _parse_amount(amount: Optional[Mapping[str, Any]]) -> Tuple[Optional[Decimal], Optional[str]]:
    if not amount:
        return None, None
    try:
        value = quantize_amount(amount.get("value"))
    except (InvalidOperation, TypeError, ValueError):
        return None, None
    return value, amount.get("currency_code")


def _payer_metadata(payer: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    if not payer:
        return {}
    meta: dict[str, Any] = {}
    if payer.get("email_address"):
        meta["payer_email"] = payer["email_address"]
    name = payer.get("name") or {}
    full_name = " ".join(p for p in (name.get("given_name"), name.get("surname")) if p)
    if full_name:
        meta["payer_name"] = full_name
    if payer.get("payer_id"):
        meta["payer_id"] = payer["payer_id"]
    return meta


def _issue(data: Mapping[str, Any]) -> str:
    details = data.get("details") or []
    if details and isinstance(details, list):
        return str(details[0].get("issue") or "")
    return str(data.get("name") or "")


class PayPalProvider(PaymentProviderAdapter):
    """Adaptador PayPal Orders v2."""

    provider = PaymentProvider.PAYPAL

    def __init__(
        self,
        settings: Optional[PremiumSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        self.settings = settings or get_premium_settings()
        self.base_url = PAYPAL_SANDBOX_URL if self.settings.paypal_is_sandbox else PAYPAL_LIVE_URL
        extra: dict[str, Any] = {"sleep": sleep} if sleep is not None else {}
        self._http = ProviderHttpClient(
            self.provider.value,
            self.base_url,
            timeout=build_timeout(
                self.settings.premium_http_connect_timeout,
                self.settings.premium_http_read_timeout,
            ),
            transport=transport,
            **extra,
        )
        self.token_cache = AccessTokenCache(self.provider.value)

    @property
    def is_configured(self) -> bool:
        return bool(
            self.settings.paypal_enabled
            and self.settings.paypal_client_id
            and self.settings.paypal_client_secret
        )

    # -----------------------------------------------------------
    # Token
    # -----------------------------------------------------------
    async def _fetch_token(self) -> Tuple[str, int]:
        response = await self._http.request(
            "POST",
            "/v1/oauth2/token",
            operation="token",
            auth=(self.settings.paypal_client_id or "", self.settings.paypal_client_secret or ""),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        if response.status_code != 200:
            raise ProviderUnavailable(
                self.provider.value, "token", response.text[:200], response.status_code
            )
        data = self._json_body(response, "token")
        token = data.get("access_token")
        if not token:
            raise ProviderUnavailable(self.provider.value, "token", "respuesta sin access_token")
        return token, int(data.get("expires_in", 3600))

    async def _api(self, method: str, url: str, *, operation: str, **kwargs: Any) -> httpx.Response:
        return await self._http.authorized_request(
            method,
            url,
            operation=operation,
            token_cache=self.token_cache,
            fetch_token=self._fetch_token,
            **kwargs,
        )

    def _json_body(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        """Cuerpo JSON de una respuesta 2xx; un cuerpo ilegible es ProviderUnavailable."""
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderUnavailable(
                self.provider.value, operation, "respuesta no JSON: " + response.text[:200], response.status_code
            ) from e
        if not isinstance(data, dict):
            raise ProviderUnavailable(
                self.provider.value, operation, "respuesta JSON inesperada", response.status_code
            )
        return data

    # -----------------------------------------------------------
    # Normalización de órdenes
    # -----------------------------------------------------------
    def _outcome_from_order(self, order: Mapping[str, Any]) -> Outcome:
        order_id = str(order.get("id") or "")
        status = str(order.get("status") or "").upper()

        if status == "COMPLETED":
            units = order.get("purchase_units") or [{}]
            captures = ((units[0].get("payments") or {}).get("captures")) or []
            if not captures:
                return Pending(order_id)
            capture = captures[0]
            capture_status = str(capture.get("status") or "").upper()
            if capture_status == "COMPLETED":
                amount, currency = _parse_amount(capture.get("amount"))
                return Success(
                    provider_reference=order_id,
                    receipt_id=capture.get("id"),
                    amount_confirmed=amount,
                    currency_confirmed=currency,
                    metadata=_payer_metadata(order.get("payer")),
                )
            if capture_status in ("DECLINED", "FAILED"):
                return Failure(order_id, f"PAYPAL_CAPTURE_{capture_status}")
            # PENDING (eCheck, revisión): se resolverá por webhook o sweep
            return Pending(order_id)

        if status == "APPROVED":
            return Pending(order_id, needs_capture=True)
        if status == "VOIDED":
            return Failure(order_id, "PAYPAL_ORDER_VOIDED", cancelled=True)
        if status in _ORDER_PENDING_STATES:
            return Pending(order_id)

        logger.warning("paypal_unknown_order_status order_id=%s status=%s", order_id, status)
        return Pending(order_id)

    # -----------------------------------------------------------
    # Contrato
    # -----------------------------------------------------------
    async def create_charge(
        self,
        *,
        attempt_id: str,
        user_id: str,
        plan: PaymentPlan,
        amount: Decimal,
        currency: str,
        phone_number: Optional[str] = None,
    ) -> ChargeResult:
        s = self.settings
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": attempt_id,
                    "custom_id": attempt_id,
                    "description": PLAN_DESCRIPTIONS[PaymentPlan(plan)],
                    "amount": {
                        "currency_code": currency.upper(),
                        "value": f"{quantize_amount(amount):.2f}",
                    },
                }
            ],
            "application_context": {
                "brand_name": s.paypal_brand_name,
                "landing_page": "BILLING",
                "user_action": "PAY_NOW",
                "return_url": f"{s.public_base_url}/api/premium/paypal/success",
                "cancel_url": f"{s.frontend_url}/premium?canceled=true",
            },
        }
        response = await self._api(
            "POST",
            "/v2/checkout/orders",
            operation="create_order",
            json=payload,
            headers={
                "Prefer": "return=representation",
                # Idempotencia de creación: reintentos devuelven la misma orden
                "PayPal-Request-Id": f"order-{attempt_id}",
            },
        )
        if response.status_code not in (200, 201):
            raise ProviderUnavailable(
                self.provider.value, "create_order", response.text[:200], response.status_code
            )

        order = self._json_body(response, "create_order")
        approve_url = next(
            (link.get("href") for link in order.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        if not order.get("id") or not approve_url:
            raise ProviderUnavailable(self.provider.value, "create_order", "orden sin id o link approve")

        logger.info(
            "paypal_order_created attempt_id=%s order_id=%s status=%s",
            attempt_id,
            order["id"],
            order.get("status"),
        )
        return ChargeResult(
            provider_reference=order["id"],
            user_facing_action={"type": "redirect", "url": approve_url},
            raw_status=order.get("status"),
        )

    async def poll_status(self, provider_reference: str) -> Outcome:
        response = await self._api(
            "GET",
            f"/v2/checkout/orders/{provider_reference}",
            operation="get_order",
        )
        if response.status_code == 404:
            # Órdenes no aprobadas expiran del lado de PayPal
            return Failure(provider_reference, "PAYPAL_ORDER_NOT_FOUND", cancelled=True)
        if response.status_code != 200:
            raise ProviderUnavailable(
                self.provider.value, "get_order", response.text[:200], response.status_code
            )
        return self._outcome_from_order(self._json_body(response, "get_order"))

    async def capture_return(self, provider_reference: str) -> Outcome:
        response = await self._api(
            "POST",
            f"/v2/checkout/orders/{provider_reference}/capture",
            operation="capture",
            json={},
            headers={
                "Prefer": "return=representation",
                "PayPal-Request-Id": f"capture-{provider_reference}",
            },
        )
        status = response.status_code

        if status in (200, 201):
            return self._outcome_from_order(self._json_body(response, "capture"))

        data: dict[str, Any] = {}
        try:
            data = response.json()
        except ValueError:
            pass
        issue = _issue(data)

        if status == 422 and issue == "ORDER_ALREADY_CAPTURED":
            logger.info("paypal_capture_already_done order_id=%s", provider_reference)
            return await self.poll_status(provider_reference)
        if status == 422 and issue == "ORDER_NOT_APPROVED":
            return Pending(provider_reference)
        if status == 422 and issue == "INSTRUMENT_DECLINED":
            # El comprador puede elegir otra fuente de fondos en PayPal
            return Pending(provider_reference)
        if status == 422:
            return Failure(provider_reference, f"PAYPAL_{issue or 'UNPROCESSABLE'}")
        if status == 404:
            return Failure(provider_reference, "PAYPAL_ORDER_NOT_FOUND", cancelled=True)

        raise ProviderUnavailable(self.provider.value, "capture", response.text[:200], status)

    async def _verify_signature(self, raw_payload: bytes, headers: Mapping[str, str]) -> bool:
        values = {name: headers.get(header) for name, header in WEBHOOK_HEADER_MAP.items()}
        missing = [name for name, value in values.items() if not value]
        if missing:
            logger.warning("PayPal webhook rechazado: faltan headers requeridos %s", missing)
            return False
        if not self.settings.paypal_webhook_id:
            logger.error("PayPal webhook rechazado: webhook_id no configurado")
            return False

        event = json.loads(raw_payload.decode("utf-8"))
        response = await self._api(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            operation="verify_webhook",
            json={**values, "webhook_id": self.settings.paypal_webhook_id, "webhook_event": event},
        )
        if response.status_code != 200:
            logger.warning(
                "PayPal verify-webhook-signature failed: %s - %s",
                response.status_code,
                response.text[:200],
            )
            return False
        verification_status = self._json_body(response, "verify_webhook").get("verification_status", "")
        if verification_status != "SUCCESS":
            logger.warning("PayPal webhook rechazado: verification_status = %s", verification_status)
            return False
        return True

    async def parse_callback(
        self,
        raw_payload: bytes,
        headers: Mapping[str, str],
        params: Optional[Mapping[str, str]] = None,
    ) -> Outcome:
        try:
            event = json.loads(raw_payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidCallback(self.provider.value, f"payload no es JSON válido: {e}") from e
        if not isinstance(event, dict):
            raise InvalidCallback(self.provider.value, "payload no es un objeto JSON")

        if not allow_insecure_webhooks(self.settings):
            if not await self._verify_signature(raw_payload, lower_headers(headers)):
                raise InvalidCallback(self.provider.value, "firma inválida")

        event_type = str(event.get("event_type") or "")
        resource = event.get("resource") or {}

        if event_type.startswith("PAYMENT.CAPTURE."):
            order_id = (
                ((resource.get("supplementary_data") or {}).get("related_ids") or {}).get("order_id")
            )
            if not order_id:
                raise InvalidCallback(self.provider.value, f"{event_type} sin order_id")

            if event_type == "PAYMENT.CAPTURE.COMPLETED":
                amount, currency = _parse_amount(resource.get("amount"))
                return Success(
                    provider_reference=order_id,
                    receipt_id=resource.get("id"),
                    amount_confirmed=amount,
                    currency_confirmed=currency,
                    metadata={"webhook_event_id": event.get("id")},
                )
            if event_type in ("PAYMENT.CAPTURE.DENIED", "PAYMENT.CAPTURE.DECLINED"):
                return Failure(order_id, "PAYPAL_CAPTURE_DENIED")
            return Pending(order_id)

        if event_type == "CHECKOUT.ORDER.APPROVED":
            return Pending(str(resource.get("id") or ""), needs_capture=True)
        if event_type == "CHECKOUT.ORDER.VOIDED":
            return Failure(str(resource.get("id") or ""), "PAYPAL_ORDER_VOIDED", cancelled=True)
        if event_type == "CHECKOUT.ORDER.COMPLETED":
            return self._outcome_from_order(resource)

        logger.info("paypal_webhook_ignored event_type=%s event_id=%s", event_type, event.get("id"))
        return Pending(str(resource.get("id") or ""))

    async def aclose(self) -> None:
        await self._http.aclose()


__all__ = ["PayPalProvider", "PAYPAL_SANDBOX_URL", "PAYPAL_LIVE_URL"]
