# -*- coding: utf-8 -*-
"""
backend/app/shared/database/database.py

SQLAlchemy async (asyncpg en producción, aiosqlite en pruebas locales).

Provee:
- engine (create_async_engine)
- SessionLocal (async_sessionmaker)
- Dependencia FastAPI: get_async_session
- context manager: session_scope()
- init_models(): crea tablas en dev/test
- check_database_health()

Autor: DoxAI
Fecha: 2025-10-18
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.shared.config import settings
from app.shared.database.base import Base  # reutilizamos la Base única

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Construye el engine async según el driver de la URL.

    - sqlite+aiosqlite en memoria: StaticPool para compartir la única conexión
      entre sesiones (si no, cada sesión vería una base vacía).
    - PostgreSQL: pool app-side configurado desde settings.
    """
    kwargs: dict[str, Any] = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=settings.db_pool_pre_ping,
        )
    return create_async_engine(url, **kwargs)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        expire_on_commit=False,
        class_=AsyncSession,
        autoflush=False,
    )


# ── Engine y session factory (perezosos: no se conectan hasta el primer uso)
engine: AsyncEngine = build_engine(settings.database_url, echo=settings.db_echo_sql)
SessionLocal = build_sessionmaker(engine)

logger.debug("[DB] engine configurado → %s", engine.url.render_as_string(hide_password=True))


# ── Dependencia FastAPI
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        try:
            yield session
        except SQLAlchemyError:
            # Importante: rollback para liberar cualquier transacción/lock
            await session.rollback()
            raise
        finally:
            if session.in_transaction():
                await session.rollback()


# ── Context manager reutilizable en jobs/scripts/tests
@asynccontextmanager
async def session_scope(
    factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    async with (factory or SessionLocal)() as session:
        try:
            yield session
            # Dejo el commit/rollback a quien use el scope; esto es solo un helper
        finally:
            if session.in_transaction():
                await session.rollback()


async def init_models(bind: Optional[AsyncEngine] = None) -> None:
    """Crea las tablas registradas en Base.metadata (idempotente)."""
    # Importa modelos para registrarlos en el metadata
    import app.modules.premium.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("[DB] tablas verificadas/creadas")


# ── Health check
async def check_database_health(timeout_s: float = 3.0, sql: str = "SELECT 1") -> bool:
    """
    Verifica conectividad a la base de datos.

    Args:
        timeout_s: Tiempo máximo de espera en segundos
        sql: Query SQL a ejecutar (default: "SELECT 1")

    Returns:
        True si la conexión es exitosa, False en caso contrario
    """
    try:
        async with asyncio.timeout(timeout_s):
            async with engine.connect() as conn:
                await conn.execute(text(sql))
        return True
    except (SQLAlchemyError, OSError, TimeoutError) as e:
        logger.warning("[DB] health check falló: %s", e)
        return False


__all__ = [
    "engine",
    "SessionLocal",
    "Base",
    "build_engine",
    "build_sessionmaker",
    "get_async_session",
    "session_scope",
    "init_models",
    "check_database_health",
]
# Fin del archivo backend/app/shared/database/database.py
