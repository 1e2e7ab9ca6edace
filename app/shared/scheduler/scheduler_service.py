# -*- coding: utf-8 -*-
"""
backend/app/shared/scheduler/scheduler_service.py

Servicio de programación de tareas periódicas usando APScheduler.

Usado por el sweep de reconciliación Premium. Defaults de cada job:
- coalesce: corridas perdidas se combinan en una
- max_instances=1: nunca dos sweeps simultáneos en el mismo proceso
- misfire_grace_time=30s

Autor: DoxAI
Fecha: 2025-11-05
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

JOB_DEFAULTS = {
    'coalesce': True,
    'max_instances': 1,
    'misfire_grace_time': 30,
}


class SchedulerService:
    """
    Envoltura del AsyncIOScheduler del proceso.

    Los jobs se registran en el lifespan (antes o después de start()) y se
    reemplazan si se registran de nuevo con el mismo ID.
    """

    def __init__(self):
        self._scheduler = AsyncIOScheduler(
            jobstores={'default': MemoryJobStore()},
            executors={'default': AsyncIOExecutor()},
            job_defaults=dict(JOB_DEFAULTS),
            timezone='UTC',
        )
        self._started = False
        logger.info("SchedulerService inicializado")

    def start(self):
        """Inicia el scheduler (requiere event loop activo)."""
        if not self._started:
            self._scheduler.start()
            self._started = True
            logger.info("SchedulerService iniciado")

    def shutdown(self, wait: bool = True):
        """
        Detiene el scheduler.

        Args:
            wait: Si True, espera a que terminen los jobs en ejecución
        """
        if self._started:
            self._scheduler.shutdown(wait=wait)
            self._started = False
            logger.info("SchedulerService detenido")

    def add_interval_job(
        self,
        func: Callable,
        job_id: str,
        hours: int = 0,
        minutes: int = 0,
        seconds: int = 0,
        next_run_time: Optional[datetime] = None,
        **kwargs: Any,
    ) -> str:
        """
        Agrega (o reemplaza) un job que se ejecuta a intervalos regulares.

        Args:
            func: Función (sync o async) a ejecutar
            job_id: ID único del job
            hours, minutes, seconds: Intervalo
            next_run_time: Primera ejecución (default: un intervalo después)
            **kwargs: Argumentos para func

        Returns:
            ID del job agregado
        """
        if not (hours or minutes or seconds):
            raise ValueError(f"Intervalo vacío para job '{job_id}'")

        trigger = IntervalTrigger(hours=hours, minutes=minutes, seconds=seconds)
        job_kwargs: dict[str, Any] = {}
        if next_run_time is not None:
            job_kwargs['next_run_time'] = next_run_time

        self._scheduler.add_job(
            func=func,
            trigger=trigger,
            id=job_id,
            name=job_id,
            replace_existing=True,
            kwargs=kwargs,
            **job_kwargs,
        )

        logger.info(
            "Job '%s' agregado: cada %sh %sm %ss", job_id, hours, minutes, seconds
        )
        return job_id

    def remove_job(self, job_id: str) -> bool:
        """
        Elimina un job programado.

        Returns:
            True si se eliminó, False si no existía
        """
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            logger.warning("No se pudo eliminar job '%s': no existe", job_id)
            return False
        logger.info("Job '%s' eliminado", job_id)
        return True

    def get_jobs(self) -> list:
        """Lista de jobs programados con información básica."""
        return [
            {
                'id': job.id,
                'name': job.name,
                'next_run': getattr(job, 'next_run_time', None),
                'trigger': str(job.trigger),
            }
            for job in self._scheduler.get_jobs()
        ]

    def get_job_status(self, job_id: str) -> Optional[dict]:
        """Estado de un job específico o None si no existe."""
        job = self._scheduler.get_job(job_id)
        if job is None:
            return None
        return {
            'id': job.id,
            'name': job.name,
            'next_run': getattr(job, 'next_run_time', None),
            'trigger': str(job.trigger),
            'max_instances': getattr(job, 'max_instances', JOB_DEFAULTS['max_instances']),
            'coalesce': getattr(job, 'coalesce', JOB_DEFAULTS['coalesce']),
            'kwargs': dict(job.kwargs),
        }

    @property
    def is_running(self) -> bool:
        """Retorna True si el scheduler está activo."""
        return self._started and self._scheduler.running


# Singleton global del scheduler
_scheduler_instance: Optional[SchedulerService] = None


def get_scheduler() -> SchedulerService:
    """
    Obtiene la instancia global del scheduler (singleton).

    Returns:
        Instancia de SchedulerService
    """
    global _scheduler_instance
    if _scheduler_instance is None:
        _scheduler_instance = SchedulerService()
    return _scheduler_instance


def reset_scheduler() -> None:
    """Detiene y descarta el singleton (tests)."""
    global _scheduler_instance
    if _scheduler_instance is not None:
        _scheduler_instance.shutdown(wait=False)
    _scheduler_instance = None


# Fin del archivo backend/app/shared/scheduler/scheduler_service.py
