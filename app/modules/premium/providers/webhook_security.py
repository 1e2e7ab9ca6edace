# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/providers/webhook_security.py

Reglas compartidas de autenticación de callbacks.

IMPORTANTE:
- El bypass inseguro SOLO funciona en PYTHON_ENV=development.
- "test" NO es desarrollo: los tests deben ser fail-closed.

Autor: DoxAI
Fecha: 2025-12-13
"""
from __future__ import annotations

import hmac
import logging
import os
from typing import Mapping, Optional

from app.shared.config.settings_premium import PremiumSettings

logger = logging.getLogger(__name__)


def _is_development_environment() -> bool:
    python_env = os.getenv("PYTHON_ENV", "production").lower()
    return python_env in ("development", "dev", "local")


def allow_insecure_webhooks(settings: PremiumSettings) -> bool:
    """
    Determina si se permite el bypass de verificación de callbacks.

    REGLAS:
    1. PAYMENTS_ALLOW_INSECURE_WEBHOOKS debe ser true
    2. ADEMÁS, debe ser entorno de desarrollo (NO test, NO producción)
    """
    python_env = os.getenv("PYTHON_ENV", "production").lower()
    if python_env == "test":
        return False

    if not settings.allow_insecure_webhooks:
        return False

    if not _is_development_environment():
        logger.error(
            "SECURITY VIOLATION: PAYMENTS_ALLOW_INSECURE_WEBHOOKS=true en entorno "
            "no-desarrollo. Ignorando flag y forzando verificación real."
        )
        return False

    logger.warning(
        "DESARROLLO: Verificación de webhooks deshabilitada. "
        "Esto NUNCA debe ocurrir en producción."
    )
    return True


def lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Copia de headers con claves en minúsculas (dict de tests o Headers de Starlette)."""
    return {str(k).lower(): str(v) for k, v in headers.items()}


def shared_secret_matches(expected: Optional[str], provided: Optional[str]) -> bool:
    """Comparación en tiempo constante; False si falta cualquiera de los dos."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


__all__ = ["allow_insecure_webhooks", "lower_headers", "shared_secret_matches"]
