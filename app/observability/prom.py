# -*- coding: utf-8 -*-
"""
backend/app/observability/prom.py

Configuración de observabilidad Prometheus.

Incluye:
- Middleware HTTP para conteo y latencia por ruta/estado
- Endpoint /metrics compatible con Prometheus (pull model)
- Soporte multiproceso (Prometheus MultiProcess Collector)

El label `path` usa la plantilla de la ruta (/api/premium/payments/{attempt_id}/status)
para no crear una serie por cada attempt_id.

Autor: Ixchel Beristain
Fecha: 07/11/2025
"""
from __future__ import annotations

import os
from time import perf_counter
from typing import Optional

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from prometheus_client import (
    CollectorRegistry, multiprocess, generate_latest, CONTENT_TYPE_LATEST,
    Counter, Histogram,
)

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_latency_seconds",
    "Latency per request (s)",
    ["method", "path", "status"],
)

# Rutas sin interés operativo
_SKIP_PATHS = frozenset({"/metrics", "/health"})


def _route_template(request: Request) -> str:
    """
    Plantilla completa de la ruta resuelta.

    Con routers incluidos por prefijo, `route.path` puede ser relativo al
    router ("/plans"); el prefijo se recupera de la parte del path real que
    la ruta no cubre.
    """
    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if not template:
        return "__unmatched__"

    path = request.scope.get("path", "")
    regex = getattr(route, "path_regex", None)
    if regex is None or regex.match(path):
        # Mount con path relativo: el prefijo vive en root_path
        mounted = request.scope.get("root_path", "")
        app_root = request.scope.get("app_root_path", mounted)
        if mounted.startswith(app_root):
            return mounted[len(app_root):].rstrip("/") + template
        return template

    for i in range(1, len(path)):
        if path[i] == "/" and regex.match(path[i:]):
            return path[:i].rstrip("/") + template
    return template


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware para instrumentar peticiones HTTP en FastAPI."""

    async def dispatch(self, request, call_next):
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        start = perf_counter()
        resp = await call_next(request)
        elapsed = perf_counter() - start

        # La ruta se resuelve durante call_next
        path = _route_template(request)
        status = str(resp.status_code)
        REQUEST_LATENCY.labels(request.method, path, status).observe(elapsed)
        REQUEST_COUNT.labels(request.method, path, status).inc()
        return resp


def _build_registry() -> Optional[CollectorRegistry]:
    """Inicializa CollectorRegistry con soporte multiproceso (si aplica)."""
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return registry
    return None


def mount_metrics(app: FastAPI, path: str = "/metrics") -> None:
    """Registra el endpoint /metrics en la app FastAPI."""
    registry = _build_registry()

    @app.get(path, include_in_schema=False)
    def metrics():
        data = generate_latest(registry) if registry else generate_latest()
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)


def setup_observability(app: FastAPI, http_metrics: bool = True) -> None:
    """Agrega middleware de Prometheus (opcional) y monta el endpoint /metrics."""
    if http_metrics:
        app.add_middleware(PrometheusMiddleware)
    mount_metrics(app)


__all__ = ["PrometheusMiddleware", "mount_metrics", "setup_observability"]

# Fin del archivo backend/app/observability/prom.py
