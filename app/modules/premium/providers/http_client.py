# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/providers/http_client.py

Cliente HTTP de proveedores (PayPal / Daraja) sobre httpx.AsyncClient.

- Timeouts explícitos (connect 5s, read 15s por defecto)
- Keep-alive y límites de conexión: un cliente por adaptador, no por request
- Retry limitado (1 intento) solo para errores transitorios (429, 502, 503, 504)
  y timeouts; 429 usa backoff mayor
- Requests no idempotentes (p. ej. STK push) no se reintentan salvo 429
- Timeout, error de red y 5xx -> ProviderUnavailable (nunca Failure)
- authorized_request: Bearer token cacheado; ante 401 invalida, renueva y
  reintenta una sola vez

Para cleanup en shutdown, registrar aclose() en el lifespan.

Autor: DoxAI
Fecha: 2025-12-13
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from app.modules.premium.errors import ProviderUnavailable
from app.modules.premium.metrics import premium_provider_errors_total
from app.modules.premium.providers.token_cache import AccessTokenCache, TokenFetcher

logger = logging.getLogger(__name__)


# =============================================================================
# TIMEOUTS / LÍMITES / RETRY
# =============================================================================

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_READ_TIMEOUT = 15.0

PROVIDER_HTTP_LIMITS = httpx.Limits(
    max_keepalive_connections=20,
    max_connections=50,
    keepalive_expiry=30.0,
)

# Códigos HTTP transitorios (retry permitido)
TRANSIENT_HTTP_ERRORS = frozenset({429, 502, 503, 504})

MAX_TRANSIENT_RETRIES = 1

RETRY_BACKOFF_BASE = 0.5
RETRY_BACKOFF_429 = 2.0


def build_timeout(
    connect: float = DEFAULT_CONNECT_TIMEOUT,
    read: float = DEFAULT_READ_TIMEOUT,
) -> httpx.Timeout:
    return httpx.Timeout(connect=connect, read=read, write=read, pool=5.0)


def _is_transient_error(status_code: int) -> bool:
    return status_code in TRANSIENT_HTTP_ERRORS


def _get_backoff_for_status(status_code: Optional[int], attempt: int) -> float:
    """Backoff exponencial; 429 usa base mayor."""
    if status_code == 429:
        return RETRY_BACKOFF_429 * (2 ** attempt)
    return RETRY_BACKOFF_BASE * (2 ** attempt)


class ProviderHttpClient:
    """Envoltura de httpx.AsyncClient con la política de errores de proveedores."""

    def __init__(
        self,
        provider: str,
        base_url: str,
        *,
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        max_transient_retries: int = MAX_TRANSIENT_RETRIES,
    ) -> None:
        self.provider = provider
        self.max_transient_retries = max_transient_retries
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout or build_timeout(),
            limits=PROVIDER_HTTP_LIMITS,
            transport=transport,
        )
        logger.debug("provider_http_client_created provider=%s base_url=%s", provider, base_url)

    def _unavailable(
        self,
        operation: str,
        detail: str,
        status_code: Optional[int] = None,
    ) -> ProviderUnavailable:
        premium_provider_errors_total.labels(self.provider, operation).inc()
        logger.warning(
            "provider_unavailable provider=%s operation=%s status=%s detail=%s",
            self.provider,
            operation,
            status_code if status_code is not None else "-",
            detail[:200],
        )
        return ProviderUnavailable(self.provider, operation, detail, status_code)

    async def request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        idempotent: bool = True,
        passthrough_statuses: frozenset[int] = frozenset(),
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Ejecuta el request aplicando retry/timeout.

        Devuelve la respuesta para cualquier status < 500 que no sea transitorio
        (incluye 4xx: cada adaptador interpreta su semántica) y para los status
        en `passthrough_statuses` (5xx con significado de negocio).
        """
        last_status: Optional[int] = None
        last_detail = ""

        for attempt in range(self.max_transient_retries + 1):
            can_retry = attempt < self.max_transient_retries
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.TimeoutException as e:
                last_status, last_detail = None, f"timeout: {e!r}"
                if can_retry and idempotent:
                    backoff = _get_backoff_for_status(None, attempt)
                    logger.warning(
                        "%s %s timeout, reintentando en %ss (intento %d/%d)",
                        self.provider, operation, backoff, attempt + 1, self.max_transient_retries + 1,
                    )
                    await self._sleep(backoff)
                    continue
                raise self._unavailable(operation, last_detail) from e
            except httpx.TransportError as e:
                last_status, last_detail = None, f"transport: {e!r}"
                if can_retry and idempotent:
                    backoff = _get_backoff_for_status(None, attempt)
                    await self._sleep(backoff)
                    continue
                raise self._unavailable(operation, last_detail) from e

            status = response.status_code
            if status in passthrough_statuses:
                return response
            if _is_transient_error(status):
                last_status, last_detail = status, response.text[:200]
                if can_retry and (idempotent or status == 429):
                    backoff = _get_backoff_for_status(status, attempt)
                    logger.warning(
                        "%s %s: error transitorio %d, reintentando en %ss (intento %d/%d)",
                        self.provider, operation, status, backoff, attempt + 1, self.max_transient_retries + 1,
                    )
                    await self._sleep(backoff)
                    continue
                raise self._unavailable(operation, last_detail, status)

            if status >= 500:
                raise self._unavailable(operation, response.text[:200], status)

            return response

        raise self._unavailable(operation, last_detail, last_status)

    async def authorized_request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        token_cache: AccessTokenCache,
        fetch_token: TokenFetcher,
        idempotent: bool = True,
        passthrough_statuses: frozenset[int] = frozenset(),
        headers: Optional[dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Request con Bearer token; un 401 invalida el token y reintenta una vez."""
        for attempt in range(2):
            token = await token_cache.get(fetch_token)
            request_headers = {**(headers or {}), "Authorization": f"Bearer {token}"}
            response = await self.request(
                method,
                url,
                operation=operation,
                idempotent=idempotent,
                passthrough_statuses=passthrough_statuses,
                headers=request_headers,
                **kwargs,
            )
            if response.status_code != 401:
                return response

            token_cache.invalidate(token)
            if attempt == 0:
                logger.info(
                    "%s %s: 401, renovando token y reintentando",
                    self.provider, operation,
                )

        raise self._unavailable(operation, "unauthorized after token refresh", 401)

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "ProviderHttpClient",
    "build_timeout",
    "TRANSIENT_HTTP_ERRORS",
    "MAX_TRANSIENT_RETRIES",
    "RETRY_BACKOFF_BASE",
    "RETRY_BACKOFF_429",
    "PROVIDER_HTTP_LIMITS",
]
