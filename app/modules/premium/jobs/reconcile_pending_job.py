# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/jobs/reconcile_pending_job.py

Job programado de reconciliación de intentos pendientes (sweep).

Cada corrida:
1. Por proveedor: recorre por páginas TODOS los pending con referencia más
   viejos que la ventana de gracia y aplica el resultado con el motor de
   reconciliación.
   Una orden PayPal aprobada pero no capturada se captura aquí.
2. Cancela huérfanos sin referencia (PROVIDER_REFERENCE_MISSING).
3. Alerta (log ERROR + gauge) de pendientes más viejos que el umbral.
4. Opcional: cancela abandonados (ABANDONED) si PENDING_AUTO_CANCEL_HOURS > 0.

Cada corrida es idempotente; un ProviderUnavailable en un intento no
detiene el resto.

Autor: DoxAI
Fecha: 2025-12-29
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.shared.config.settings_premium import PremiumSettings, get_premium_settings
from app.shared.database.database import session_scope
from app.shared.scheduler import get_scheduler
from app.modules.premium.enums import AttemptState, PaymentProvider
from app.modules.premium.errors import (
    REASON_ABANDONED,
    REASON_PROVIDER_REFERENCE_MISSING,
    ProviderUnavailable,
)
from app.modules.premium.metrics import (
    premium_stale_pending_attempts,
    premium_sweep_duration_seconds,
)
from app.modules.premium.providers.base import PaymentProviderAdapter
from app.modules.premium.providers.registry import ProviderRegistry, build_provider_registry
from app.modules.premium.repositories import PaymentLedger
from app.modules.premium.services.checkout_service import fetch_outcome
from app.modules.premium.services.reconciliation_service import (
    ReconcileAction,
    ReconciliationEngine,
)
from app.modules.premium.utils.datetime_helpers import utcnow

logger = logging.getLogger(__name__)

# ID del job para referencia
PREMIUM_RECONCILE_JOB_ID = "premium_reconcile_pending_attempts"


@dataclass
class SweepSummary:
    checked: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    still_pending: int = 0
    already_terminal: int = 0
    not_found: int = 0
    errors: int = 0
    orphans_cancelled: int = 0
    abandoned_cancelled: int = 0
    stale: int = 0

    def record(self, action: ReconcileAction) -> None:
        if action is ReconcileAction.APPLIED_COMPLETED:
            self.completed += 1
        elif action in (ReconcileAction.APPLIED_FAILED, ReconcileAction.AMOUNT_MISMATCH):
            self.failed += 1
        elif action is ReconcileAction.APPLIED_CANCELLED:
            self.cancelled += 1
        elif action is ReconcileAction.STILL_PENDING:
            self.still_pending += 1
        elif action is ReconcileAction.ALREADY_TERMINAL:
            self.already_terminal += 1
        else:
            self.not_found += 1

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _grace_minutes(settings: PremiumSettings, provider: PaymentProvider) -> int:
    if provider is PaymentProvider.PAYPAL:
        return settings.premium_paypal_grace_minutes
    return settings.premium_mpesa_grace_minutes


async def _reconcile_provider(
    session: AsyncSession,
    adapter: PaymentProviderAdapter,
    *,
    ledger: PaymentLedger,
    engine: ReconciliationEngine,
    settings: PremiumSettings,
    now: datetime,
    summary: SweepSummary,
) -> None:
    provider = adapter.provider
    cutoff = now - timedelta(minutes=_grace_minutes(settings, provider))
    batch_size = settings.premium_sweep_batch_size
    cursor: Optional[tuple[datetime, str]] = None

    # Recorre TODOS los pendientes vencidos por páginas (keyset sobre created_at, id):
    # los que siguen pending no deben tapar a los más nuevos.
    while True:
        attempts = await ledger.list_stale_pending(
            session, provider, cutoff, limit=batch_size, after=cursor
        )
        if not attempts:
            break
        # Un rollback del motor expira las filas cargadas: trabajar con copias
        targets = [(a.id, a.provider_reference) for a in attempts]
        cursor = (attempts[-1].created_at, attempts[-1].id)
        # Liberar la transacción de lectura antes de llamar al proveedor
        await session.commit()

        for attempt_id, reference in targets:
            summary.checked += 1
            try:
                outcome = await fetch_outcome(adapter, reference)
            except ProviderUnavailable as e:
                summary.errors += 1
                logger.warning(
                    "premium_sweep_provider_unavailable attempt_id=%s provider=%s detail=%s",
                    attempt_id,
                    provider.value,
                    str(e)[:200],
                )
                continue

            try:
                result = await engine.reconcile(session, provider, outcome, now=now)
            except Exception:
                # reconcile ya hizo rollback y dejó traza; el intento se reintenta en la próxima corrida
                summary.errors += 1
                continue
            summary.record(result.action)

        if len(targets) < batch_size:
            break


async def _cancel_orphans(
    session: AsyncSession,
    *,
    ledger: PaymentLedger,
    settings: PremiumSettings,
    now: datetime,
    summary: SweepSummary,
) -> None:
    grace = min(settings.premium_paypal_grace_minutes, settings.premium_mpesa_grace_minutes)
    cutoff = now - timedelta(minutes=grace)
    batch_size = settings.premium_sweep_batch_size

    # Cada huérfano listado queda terminal, así que la siguiente página ya no lo incluye
    while True:
        orphans = await ledger.list_pending_without_reference(session, cutoff, limit=batch_size)
        for attempt_id in [a.id for a in orphans]:
            transition = await ledger.transition_terminal(
                session,
                attempt_id,
                AttemptState.CANCELLED,
                failure_reason=REASON_PROVIDER_REFERENCE_MISSING,
            )
            if transition.applied:
                summary.orphans_cancelled += 1
        await session.commit()
        if len(orphans) < batch_size:
            break

    if summary.orphans_cancelled:
        logger.warning("premium_sweep_orphans_cancelled count=%d", summary.orphans_cancelled)


async def _check_stale(
    session: AsyncSession,
    provider: PaymentProvider,
    *,
    ledger: PaymentLedger,
    settings: PremiumSettings,
    now: datetime,
    summary: SweepSummary,
) -> None:
    stale_cutoff = now - timedelta(hours=settings.premium_stale_alert_hours)
    stale = await ledger.count_pending_older_than(session, provider, stale_cutoff)
    premium_stale_pending_attempts.labels(provider.value).set(stale)
    summary.stale += stale
    if stale:
        logger.error(
            "premium_stale_pending_attempts provider=%s count=%d older_than_hours=%d",
            provider.value,
            stale,
            settings.premium_stale_alert_hours,
        )

    if settings.premium_pending_auto_cancel_hours <= 0:
        await session.commit()
        return

    abandon_cutoff = now - timedelta(hours=settings.premium_pending_auto_cancel_hours)
    batch_size = settings.premium_sweep_batch_size
    cursor: Optional[tuple[datetime, str]] = None
    while True:
        abandoned = await ledger.list_stale_pending(
            session, provider, abandon_cutoff, limit=batch_size, after=cursor
        )
        if not abandoned:
            break
        cursor = (abandoned[-1].created_at, abandoned[-1].id)
        for attempt_id, reference in [(a.id, a.provider_reference) for a in abandoned]:
            transition = await ledger.transition_terminal(
                session,
                attempt_id,
                AttemptState.CANCELLED,
                failure_reason=REASON_ABANDONED,
            )
            if transition.applied:
                summary.abandoned_cancelled += 1
                logger.warning(
                    "premium_attempt_abandoned attempt_id=%s provider=%s ref=%s",
                    attempt_id,
                    provider.value,
                    reference,
                )
        if len(abandoned) < batch_size:
            break
    await session.commit()


async def reconcile_pending_attempts(
    registry: Optional[ProviderRegistry] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    settings: Optional[PremiumSettings] = None,
    now: Optional[datetime] = None,
    engine: Optional[ReconciliationEngine] = None,
) -> dict[str, Any]:
    """
    Ejecuta una corrida del sweep.

    Args:
        registry: Adaptadores (si no se provee se construye y cierra aquí)
        session_factory: Fábrica de sesiones (default SessionLocal)
        settings: Configuración Premium
        now: Reloj inyectable para pruebas

    Returns:
        Resumen de la corrida (SweepSummary.to_dict)
    """
    settings = settings or get_premium_settings()
    now = now or utcnow()
    engine = engine or ReconciliationEngine()
    ledger = engine.ledger
    summary = SweepSummary()

    owns_registry = registry is None
    if registry is None:
        registry = build_provider_registry(settings)

    try:
        with premium_sweep_duration_seconds.time():
            async with session_scope(session_factory) as session:
                for adapter in registry:
                    if adapter.is_configured:
                        await _reconcile_provider(
                            session,
                            adapter,
                            ledger=ledger,
                            engine=engine,
                            settings=settings,
                            now=now,
                            summary=summary,
                        )
                    else:
                        logger.debug("premium_sweep_skip provider=%s (no configurado)", adapter.provider.value)

                await _cancel_orphans(session, ledger=ledger, settings=settings, now=now, summary=summary)

                for provider in PaymentProvider:
                    await _check_stale(
                        session,
                        provider,
                        ledger=ledger,
                        settings=settings,
                        now=now,
                        summary=summary,
                    )
    finally:
        if owns_registry:
            await registry.aclose()

    if summary.checked or summary.orphans_cancelled or summary.abandoned_cancelled:
        logger.info("premium_sweep_done %s", " ".join(f"{k}={v}" for k, v in summary.to_dict().items()))
    else:
        logger.debug("premium_sweep_done nothing to reconcile")
    return summary.to_dict()


def register_reconcile_pending_job(
    registry: Optional[ProviderRegistry] = None,
    interval_minutes: Optional[int] = None,
    settings: Optional[PremiumSettings] = None,
) -> str:
    """
    Registra el sweep en el scheduler global.

    Returns:
        ID del job registrado
    """
    settings = settings or get_premium_settings()
    interval = interval_minutes or settings.premium_sweep_interval_minutes
    scheduler = get_scheduler()

    job_id = scheduler.add_interval_job(
        func=reconcile_pending_attempts,
        job_id=PREMIUM_RECONCILE_JOB_ID,
        minutes=interval,
        registry=registry,
        settings=settings,
    )

    logger.info(
        "Registered premium reconcile job: id=%s interval=%d min",
        job_id,
        interval,
    )
    return job_id


__all__ = [
    "reconcile_pending_attempts",
    "register_reconcile_pending_job",
    "PREMIUM_RECONCILE_JOB_ID",
    "SweepSummary",
]
