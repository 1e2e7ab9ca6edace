# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/metrics.py

Coleccionistas Prometheus para el módulo Premium.

Define contadores, gauges e histogramas para registrar:
- Outcomes aplicados/descartados por el motor de reconciliación
- Discrepancias de monto (anomalía de seguridad)
- Callbacks rechazados por autenticación
- Errores transitorios de proveedores
- Intentos pendientes por encima del umbral de alerta
- Duración del sweep

Autor: Ixchel Beristain
Fecha: 2025-11-07
"""
from prometheus_client import Counter, Gauge, Histogram

NAMESPACE = "nextscene"
SUBSYSTEM = "premium"

premium_outcomes_total = Counter(
    f"{NAMESPACE}_{SUBSYSTEM}_outcomes_total",
    "Outcomes procesados por el motor de reconciliación",
    labelnames=("provider", "action"),
)

premium_amount_mismatch_total = Counter(
    f"{NAMESPACE}_{SUBSYSTEM}_amount_mismatch_total",
    "Outcomes de éxito cuyo monto/moneda no coincide con el ledger",
    labelnames=("provider",),
)

premium_callbacks_rejected_total = Counter(
    f"{NAMESPACE}_{SUBSYSTEM}_callbacks_rejected_total",
    "Callbacks/webhooks rechazados por firma o payload inválido",
    labelnames=("provider",),
)

premium_provider_errors_total = Counter(
    f"{NAMESPACE}_{SUBSYSTEM}_provider_errors_total",
    "Errores transitorios (timeout/red/5xx) por proveedor y operación",
    labelnames=("provider", "operation"),
)

premium_stale_pending_attempts = Gauge(
    f"{NAMESPACE}_{SUBSYSTEM}_stale_pending_attempts",
    "Intentos pendientes por encima del umbral de alerta",
    labelnames=("provider",),
)

premium_sweep_duration_seconds = Histogram(
    f"{NAMESPACE}_{SUBSYSTEM}_sweep_duration_seconds",
    "Duración de cada corrida del sweep de reconciliación (segundos)",
)

__all__ = [
    "premium_outcomes_total",
    "premium_amount_mismatch_total",
    "premium_callbacks_rejected_total",
    "premium_provider_errors_total",
    "premium_stale_pending_attempts",
    "premium_sweep_duration_seconds",
]

# Fin del archivo backend/app/modules/premium/metrics.py
