# -*- coding: utf-8 -*-
"""
backend/app/main.py

Punto de entrada principal del backend NextScene Premium.

Ajustes clave:
- Configuración vía app.shared.config (Dev/Test/Prod según PYTHON_ENV)
- Logging centralizado (plain/json) en el lifespan
- Tablas creadas en startup si DB_CREATE_TABLES (dev/test)
- Registro de adaptadores PayPal/M-Pesa en app.state
- Scheduler con el sweep de reconciliación de pagos pendientes
- Observabilidad Prometheus (/metrics) vía app.observability.prom
- Shutdown ordenado: scheduler, clientes HTTP de proveedores y pool de la base

Autor: Ixchel Beristain
Fecha: 17/11/2025
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

# ---------------------------------------------------------------------------
# Cargar .env ANTES de cualquier import que lea configuración
# En PROD: override=False para respetar variables del entorno
# ---------------------------------------------------------------------------
from dotenv import load_dotenv

_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
_PYTHON_ENV = os.getenv("PYTHON_ENV", "development").strip().lower()
load_dotenv(dotenv_path=_ENV_PATH, override=_PYTHON_ENV == "development")

import anyio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.observability.prom import setup_observability
from app.shared.config import get_premium_settings, get_settings, setup_logging
from app.shared.database.database import check_database_health, engine, init_models
from app.shared.middleware import JSONExceptionMiddleware, install_premium_exception_handlers
from app.modules.premium.providers.registry import build_provider_registry
from app.modules.premium.routes import get_premium_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ────────── STARTUP ──────────
    settings = get_settings()
    premium_settings = get_premium_settings()
    setup_logging(settings.log_level, settings.log_format)

    if settings.db_create_tables:
        await init_models()

    registry = build_provider_registry(premium_settings)
    app.state.premium_registry = registry

    scheduler = None
    if settings.scheduler_enabled:
        from app.shared.scheduler import get_scheduler
        from app.modules.premium.jobs import register_reconcile_pending_job

        scheduler = get_scheduler()
        register_reconcile_pending_job(registry=registry, settings=premium_settings)
        scheduler.start()
        logger.info("⏰ Scheduler iniciado con jobs programados")
    else:
        logger.info("Scheduler deshabilitado (SCHEDULER_ENABLED=false)")

    logger.info("🟢 Backend NextScene Premium iniciado (env=%s)", settings.python_env)

    try:
        yield
    finally:
        # ────────── SHUTDOWN ──────────
        logger.info("🔴 Iniciando shutdown ordenado...")
        with anyio.CancelScope(shield=True):
            # Detener scheduler primero: ningún sweep debe usar clientes cerrados
            if scheduler is not None:
                scheduler.shutdown(wait=True)
                logger.info("⏰ Scheduler detenido")

            await registry.aclose()
            app.state.premium_registry = None
            logger.info("💳 Clientes HTTP de proveedores cerrados")

            await engine.dispose()
            logger.info("🗄️ Pool de base de datos cerrado")

        logger.info("🔴 Backend NextScene Premium apagado.")


openapi_tags = [
    {"name": "premium", "description": "Planes, checkout y estado Premium"},
    {"name": "premium:webhooks", "description": "Webhooks de PayPal y callbacks de M-Pesa"},
]


def _configure_cors(app_instance: FastAPI) -> None:
    settings = get_settings()
    origins = settings.get_cors_origins()
    is_wildcard_only = origins == ["*"]

    if is_wildcard_only and settings.is_prod:
        logger.error("❌ REFUSING WILDCARD CORS IN PRODUCTION! Set CORS_ORIGINS explicitly.")
        return

    app_instance.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # "*" con allow_credentials=True es inválido en navegadores
        allow_credentials=not is_wildcard_only,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=600,
    )
    logger.debug("CORS habilitado para %s", origins)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="NextScene Premium API",
        description="Pagos Premium (PayPal / M-Pesa) y reconciliación",
        version="1.0.0",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # El orden real de ejecución de middlewares es inverso al registro:
    # CORS al final para que se ejecute PRIMERO (outermost).
    app.add_middleware(JSONExceptionMiddleware)
    setup_observability(app, http_metrics=settings.http_metrics_enabled)
    _configure_cors(app)

    install_premium_exception_handlers(app)
    app.include_router(get_premium_router())

    @app.get("/")
    async def root():
        return {"service": "NextScene Premium Backend", "status": "active"}

    @app.get("/health")
    async def health():
        db_ok = await check_database_health()
        return {"status": "ok" if db_ok else "degraded", "database": db_ok}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=_PYTHON_ENV == "development",
    )

# Fin del archivo backend/app/main.py
