# -*- coding: utf-8 -*-
import os
import pytest

from app.shared.config.config_loader import get_settings
from app.shared.config.settings_premium import reset_premium_settings

# Variables que un shell de desarrollo podría filtrar a los tests de configuración
_ENV_PREFIXES = (
    "DB_", "JWT_", "PAYPAL_", "MPESA_", "PREMIUM_", "PAYMENTS_", "CORS_",
    "APP_", "LOG_", "HTTP_", "SCHEDULER_", "PUBLIC_BASE_URL", "FRONTEND_URL",
    "ACCESS_TOKEN_",
)


@pytest.fixture(autouse=True)
def _isolate_env_and_cache(monkeypatch):
    """
    Aísla variables de entorno y limpia el caché de get_settings() en cada test.
    """
    for k in list(os.environ.keys()):
        if k.upper().startswith(_ENV_PREFIXES):
            monkeypatch.delenv(k, raising=False)
    monkeypatch.setenv("PYTHON_ENV", "development")

    get_settings.cache_clear()
    reset_premium_settings()

    yield

    # monkeypatch restaura el entorno después; el próximo get_settings() lo relee
    get_settings.cache_clear()
    reset_premium_settings()
# Fin del archivo backend/tests/shared/config/conftest.py
