# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/jobs/__init__.py

Jobs programados del módulo Premium.
"""

from .reconcile_pending_job import (
    PREMIUM_RECONCILE_JOB_ID,
    SweepSummary,
    reconcile_pending_attempts,
    register_reconcile_pending_job,
)

__all__ = [
    "PREMIUM_RECONCILE_JOB_ID",
    "SweepSummary",
    "reconcile_pending_attempts",
    "register_reconcile_pending_job",
]
