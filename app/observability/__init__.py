# -*- coding: utf-8 -*-
"""
backend/app/observability/__init__.py

Observabilidad HTTP (Prometheus).
"""

from .prom import PrometheusMiddleware, mount_metrics, setup_observability

__all__ = ["PrometheusMiddleware", "mount_metrics", "setup_observability"]
