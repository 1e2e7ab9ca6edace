# -*- coding: utf-8 -*-
"""
backend/app/shared/config/__init__.py

Punto único de acceso a la configuración:
    from app.shared.config import settings, get_settings

`settings` es un proxy perezoso: no instancia la configuración al importar
(evita validaciones prematuras durante la recolección de tests) y delega cada
atributo en get_settings(), que elige Dev/Test/Prod según PYTHON_ENV.
"""

from __future__ import annotations

from typing import Any, Callable

from .config_loader import get_settings
from .logging_config import setup_logging
from .settings_premium import PremiumSettings, get_premium_settings


class _SettingsProxy:
    __slots__ = ("_base_getter",)

    def __init__(self, base_getter: Callable[[], object]) -> None:
        object.__setattr__(self, "_base_getter", base_getter)

    def __getattr__(self, name: str) -> Any:
        base = object.__getattribute__(self, "_base_getter")()
        return getattr(base, name)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("settings es de solo lectura; usa variables de entorno")


# Singleton accesible como `settings` (lazy-load via getter)
settings = _SettingsProxy(get_settings)

__all__ = [
    "settings",
    "get_settings",
    "setup_logging",
    "PremiumSettings",
    "get_premium_settings",
]
# Fin del archivo backend/app/shared/config/__init__.py
