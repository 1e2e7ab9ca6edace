# -*- coding: utf-8 -*-
"""
backend/app/shared/middleware/exception_handler.py

Manejo de errores HTTP.

- JSONExceptionMiddleware: cualquier excepción no manejada responde JSON 500
  con error_code y request_id para trazabilidad (nunca text/plain).
- install_premium_exception_handlers: traduce la taxonomía de errores del
  módulo Premium a respuestas HTTP estables.

Autor: DoxAI
Fecha: 2026-01-28
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.modules.premium.errors import (
    AttemptNotFound,
    InvalidCallback,
    InvalidPhoneNumber,
    ProviderNotConfigured,
    ProviderUnavailable,
)

logger = logging.getLogger(__name__)

# Header para request ID (nginx, balanceadores, etc.)
REQUEST_ID_HEADERS = ["x-request-id", "x-correlation-id"]


def get_request_id(request: Request) -> str:
    """Extrae request_id de headers o genera uno nuevo."""
    for header in REQUEST_ID_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return uuid.uuid4().hex[:16]


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id(request)


def error_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
) -> JSONResponse:
    request_id = _request_id(request)
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": {
                "error_code": error_code,
                "message": message,
                "request_id": request_id,
            }
        },
        headers={"X-Request-ID": request_id},
    )


class JSONExceptionMiddleware(BaseHTTPMiddleware):
    """
    Middleware que captura excepciones no manejadas y devuelve JSON.

    Garantiza:
    - Content-Type: application/json
    - error_code estable para UI
    - request_id para correlación de logs
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = get_request_id(request)

        # Inyectar request_id en state para uso downstream
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "unhandled_exception request_id=%s method=%s path=%s error=%r",
                request_id,
                request.method,
                request.url.path,
                e,
            )
            return error_response(request, 500, "INTERNAL_SERVER_ERROR", "Internal server error")

        response.headers.setdefault("X-Request-ID", request_id)
        return response


def install_premium_exception_handlers(app: FastAPI) -> None:
    """Registra los handlers de errores Premium en la app."""

    @app.exception_handler(ProviderUnavailable)
    async def _provider_unavailable(request: Request, exc: ProviderUnavailable):
        return error_response(
            request,
            503,
            "PAYMENT_PROVIDER_UNAVAILABLE",
            "Payment could not be started, try again",
        )

    @app.exception_handler(ProviderNotConfigured)
    async def _provider_not_configured(request: Request, exc: ProviderNotConfigured):
        logger.warning("provider_not_configured path=%s detail=%s", request.url.path, exc)
        return error_response(
            request,
            503,
            "PAYMENT_PROVIDER_NOT_AVAILABLE",
            "Payment method not available",
        )

    @app.exception_handler(InvalidPhoneNumber)
    async def _invalid_phone(request: Request, exc: InvalidPhoneNumber):
        return error_response(request, 400, "INVALID_PHONE_NUMBER", str(exc))

    @app.exception_handler(AttemptNotFound)
    async def _attempt_not_found(request: Request, exc: AttemptNotFound):
        return error_response(request, 404, "PAYMENT_NOT_FOUND", "Payment not found")

    @app.exception_handler(InvalidCallback)
    async def _invalid_callback(request: Request, exc: InvalidCallback):
        return error_response(request, 401, "INVALID_CALLBACK", "Callback could not be authenticated")


__all__ = [
    "JSONExceptionMiddleware",
    "get_request_id",
    "error_response",
    "install_premium_exception_handlers",
]
