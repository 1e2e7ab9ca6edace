# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/providers/mpesa_provider.py

Adaptador M-Pesa (Safaricom Daraja, Lipa na M-Pesa Online / STK push).

Flujo:
1. create_charge: POST /mpesa/stkpush/v1/processrequest. El teléfono del
   usuario recibe el prompt; CheckoutRequestID es la provider_reference.
2. Safaricom llama a CallBackURL con Body.stkCallback (ResultCode 0 = éxito).
   El callback no está firmado: se autentica con un token compartido en el
   query string (?token=...) o en el header X-Mpesa-Callback-Token.
3. poll_status: POST /mpesa/stkpushquery/v1/query (llamada saliente
   autenticada; no informa monto).

Autor: DoxAI
Fecha: 2025-12-13
"""
from __future__ import annotations

import base64
import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Mapping, Optional, Tuple

import httpx

from app.shared.config.settings_premium import PremiumSettings, get_premium_settings
from app.modules.premium.enums import PaymentPlan, PaymentProvider
from app.modules.premium.errors import REASON_USER_CANCELLED, InvalidCallback, ProviderUnavailable
from app.modules.premium.plans import quantize_amount
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
from app.modules.premium.providers.webhook_security import (
    allow_insecure_webhooks,
    lower_headers,
    shared_secret_matches,
)
from app.modules.premium.utils.phone import normalize_msisdn

logger = logging.getLogger(__name__)

MPESA_SANDBOX_URL = "https://sandbox.safaricom.co.ke"
MPESA_PRODUCTION_URL = "https://api.safaricom.co.ke"

CALLBACK_TOKEN_HEADER = "x-mpesa-callback-token"

# Africa/Nairobi no tiene horario de verano
EAT = timezone(timedelta(hours=3), "EAT")

RESULT_SUCCESS = 0
RESULT_USER_CANCELLED = 1032
# Query sobre una transacción que el usuario aún no responde
ERROR_STILL_PROCESSING = "500.001.1001"


def daraja_timestamp(now: Optional[datetime] = None) -> str:
    """Timestamp YYYYMMDDHHMMSS en hora de Nairobi."""
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(EAT).strftime("%Y%m%d%H%M%S")


def daraja_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """base64(shortcode + passkey + timestamp)."""
    raw = f"{shortcode}{passkey}{timestamp}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def _integer_amount(amount: Decimal) -> int:
    """Daraja solo acepta montos enteros en KES."""
    value = Decimal(str(amount))
    if value != value.to_integral_value():
        raise ValueError(f"M-Pesa requiere monto entero, recibido {amount}")
    return int(value)


def _result_code(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _callback_items(stk: Mapping[str, Any]) -> dict[str, Any]:
    """CallbackMetadata.Item [{Name, Value}] -> dict."""
    items = ((stk.get("CallbackMetadata") or {}).get("Item")) or []
    return {item.get("Name"): item.get("Value") for item in items if isinstance(item, dict)}


class MpesaProvider(PaymentProviderAdapter):
    """Adaptador Daraja STK push."""

    provider = PaymentProvider.MPESA

    def __init__(
        self,
        settings: Optional[PremiumSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.settings = settings or get_premium_settings()
        self.base_url = MPESA_SANDBOX_URL if self.settings.mpesa_is_sandbox else MPESA_PRODUCTION_URL
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
        self._clock = clock
        self.token_cache = AccessTokenCache(self.provider.value)

    @property
    def is_configured(self) -> bool:
        s = self.settings
        return bool(
            s.mpesa_enabled
            and s.mpesa_consumer_key
            and s.mpesa_consumer_secret
            and s.mpesa_shortcode
            and s.mpesa_passkey
        )

    @property
    def callback_url(self) -> str:
        url = f"{self.settings.public_base_url}/api/premium/mpesa/callback"
        if self.settings.mpesa_callback_token:
            url += f"?token={self.settings.mpesa_callback_token}"
        return url

    # -----------------------------------------------------------
    # Token
    # -----------------------------------------------------------
    async def _fetch_token(self) -> Tuple[str, int]:
        response = await self._http.request(
            "GET",
            "/oauth/v1/generate",
            operation="token",
            params={"grant_type": "client_credentials"},
            auth=(self.settings.mpesa_consumer_key or "", self.settings.mpesa_consumer_secret or ""),
        )
        if response.status_code != 200:
            raise ProviderUnavailable(
                self.provider.value, "token", response.text[:200], response.status_code
            )
        data = response.json()
        token = data.get("access_token")
        if not token:
            raise ProviderUnavailable(self.provider.value, "token", "respuesta sin access_token")
        return token, int(data.get("expires_in", 3599))

    def _credentials(self) -> dict[str, str]:
        timestamp = daraja_timestamp(self._clock())
        shortcode = self.settings.mpesa_shortcode or ""
        return {
            "BusinessShortCode": shortcode,
            "Password": daraja_password(shortcode, self.settings.mpesa_passkey or "", timestamp),
            "Timestamp": timestamp,
        }

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
        msisdn = normalize_msisdn(phone_number or "")
        plan = PaymentPlan(plan)
        payload = {
            **self._credentials(),
            "TransactionType": "CustomerPayBillOnline",
            "Amount": _integer_amount(amount),
            "PartyA": msisdn,
            "PartyB": self.settings.mpesa_shortcode,
            "PhoneNumber": msisdn,
            "CallBackURL": self.callback_url,
            "AccountReference": f"NextScene-{plan.value}",
            "TransactionDesc": f"NextScene Premium {plan.value}",
        }
        # El STK push no es idempotente: un reintento enviaría un segundo prompt
        response = await self._http.authorized_request(
            "POST",
            "/mpesa/stkpush/v1/processrequest",
            operation="stk_push",
            token_cache=self.token_cache,
            fetch_token=self._fetch_token,
            idempotent=False,
            json=payload,
        )
        data: dict[str, Any] = {}
        try:
            data = response.json()
        except ValueError:
            pass

        checkout_id = data.get("CheckoutRequestID")
        if response.status_code != 200 or str(data.get("ResponseCode")) != "0" or not checkout_id:
            raise ProviderUnavailable(
                self.provider.value,
                "stk_push",
                str(data.get("errorMessage") or data.get("ResponseDescription") or response.text[:200]),
                response.status_code,
            )

        logger.info(
            "mpesa_stk_push_sent attempt_id=%s checkout_request_id=%s",
            attempt_id,
            checkout_id,
        )
        return ChargeResult(
            provider_reference=checkout_id,
            user_facing_action={
                "type": "phone_prompt",
                "message": data.get("CustomerMessage") or "Check your phone to complete the payment",
            },
            raw_status=str(data.get("ResponseCode")),
        )

    async def poll_status(self, provider_reference: str) -> Outcome:
        payload = {**self._credentials(), "CheckoutRequestID": provider_reference}
        response = await self._http.authorized_request(
            "POST",
            "/mpesa/stkpushquery/v1/query",
            operation="stk_query",
            token_cache=self.token_cache,
            fetch_token=self._fetch_token,
            passthrough_statuses=frozenset({500}),
            json=payload,
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderUnavailable(
                self.provider.value, "stk_query", response.text[:200], response.status_code
            ) from e

        if str(data.get("errorCode") or "") == ERROR_STILL_PROCESSING:
            return Pending(provider_reference)

        code = _result_code(data.get("ResultCode"))
        if code is None:
            # Errores sin ResultCode (400 por parámetros, 500 genérico): reintentar luego
            raise ProviderUnavailable(
                self.provider.value,
                "stk_query",
                str(data.get("errorMessage") or response.text[:200]),
                response.status_code,
            )
        if code == RESULT_SUCCESS:
            return Success(provider_reference=provider_reference)
        if code == RESULT_USER_CANCELLED:
            return Failure(provider_reference, REASON_USER_CANCELLED, cancelled=True)
        return Failure(provider_reference, f"MPESA_{code}")

    def _authenticate(self, headers: Mapping[str, str], params: Optional[Mapping[str, str]]) -> None:
        if allow_insecure_webhooks(self.settings):
            return
        expected = self.settings.mpesa_callback_token
        if not expected:
            logger.error("M-Pesa callback rechazado: MPESA_CALLBACK_TOKEN no configurado")
            raise InvalidCallback(self.provider.value, "callback token no configurado")
        provided = (params or {}).get("token") or lower_headers(headers).get(CALLBACK_TOKEN_HEADER)
        if not shared_secret_matches(expected, provided):
            raise InvalidCallback(self.provider.value, "callback token inválido")

    async def parse_callback(
        self,
        raw_payload: bytes,
        headers: Mapping[str, str],
        params: Optional[Mapping[str, str]] = None,
    ) -> Outcome:
        self._authenticate(headers, params)

        try:
            body = json.loads(raw_payload.decode("utf-8"))
            stk = body["Body"]["stkCallback"]
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError) as e:
            raise InvalidCallback(self.provider.value, f"payload ilegible: {e!r}") from e

        checkout_id = stk.get("CheckoutRequestID")
        code = _result_code(stk.get("ResultCode"))
        if not checkout_id or code is None:
            raise InvalidCallback(self.provider.value, "stkCallback sin CheckoutRequestID/ResultCode")

        if code == RESULT_USER_CANCELLED:
            return Failure(checkout_id, REASON_USER_CANCELLED, cancelled=True)
        if code != RESULT_SUCCESS:
            return Failure(checkout_id, f"MPESA_{code}")

        items = _callback_items(stk)
        amount: Optional[Decimal] = None
        if items.get("Amount") is not None:
            try:
                amount = quantize_amount(items["Amount"])
            except (InvalidOperation, ValueError) as e:
                raise InvalidCallback(self.provider.value, f"Amount inválido: {items['Amount']!r}") from e

        metadata: dict[str, Any] = {}
        if items.get("PhoneNumber") is not None:
            metadata["phone_number"] = str(items["PhoneNumber"])
        if items.get("TransactionDate") is not None:
            metadata["transaction_date"] = str(items["TransactionDate"])

        return Success(
            provider_reference=checkout_id,
            receipt_id=items.get("MpesaReceiptNumber"),
            amount_confirmed=amount,
            currency_confirmed="KES" if amount is not None else None,
            metadata=metadata,
        )

    async def aclose(self) -> None:
        await self._http.aclose()


__all__ = [
    "MpesaProvider",
    "MPESA_SANDBOX_URL",
    "MPESA_PRODUCTION_URL",
    "CALLBACK_TOKEN_HEADER",
    "daraja_timestamp",
    "daraja_password",
]
