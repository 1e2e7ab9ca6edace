# -*- coding: utf-8 -*-
"""
backend/app/shared/database/__init__.py

Re-exporta utilidades comunes de base de datos.

Autor: DoxAI
Fecha: 2025-10-18 (Consolidación modular; ajustado 2025-11-21)
"""

from __future__ import annotations

from .database import (
    engine,
    SessionLocal,
    build_engine,
    build_sessionmaker,
    get_async_session,
    session_scope,
    init_models,
    check_database_health,
)
from .base import Base, NAMING_CONVENTION, str_enum_column

__all__ = [
    "engine",
    "SessionLocal",
    "Base",
    "NAMING_CONVENTION",
    "str_enum_column",
    "build_engine",
    "build_sessionmaker",
    "get_async_session",
    "session_scope",
    "init_models",
    "check_database_health",
]

# Fin del archivo backend/app/shared/database/__init__.py
