# -*- coding: utf-8 -*-
"""
backend/tests/modules/premium/test_reconciliation_engine.py

Tests del motor de reconciliación:
- Una sola transición terminal y una sola extensión por intento
- Entregas duplicadas / tardías (ALREADY_TERMINAL)
- Discrepancia de monto o moneda (AMOUNT_MISMATCH)
- Rollback conjunto de ledger + entitlement ante errores

Autor: DoxAI
Fecha: 2025-12-29
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from prometheus_client import REGISTRY

from app.modules.premium.enums import AttemptState, PaymentPlan, PaymentProvider
from app.modules.premium.errors import REASON_AMOUNT_MISMATCH, REASON_USER_CANCELLED
from app.modules.premium.models import UserEntitlement
from app.modules.premium.plans import add_months
from app.modules.premium.providers.base import Failure, Pending, Success
from app.modules.premium.repositories import EntitlementStore, PaymentLedger
from app.modules.premium.services import ReconcileAction, ReconciliationEngine
from app.modules.premium.utils.datetime_helpers import ensure_utc

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
ENGINE_LOGGER = "app.modules.premium.services.reconciliation_service"


def _metric(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def _paypal_success(ref="REF-1", amount="9.99", currency="USD", receipt="CAPTURE-1"):
    return Success(
        provider_reference=ref,
        receipt_id=receipt,
        amount_confirmed=Decimal(amount) if amount is not None else None,
        currency_confirmed=currency,
    )


@pytest.fixture
def engine():
    return ReconciliationEngine()


async def _state(session_factory, attempt_id):
    async with session_factory() as session:
        attempt = await PaymentLedger().get(session, attempt_id)
        return attempt


async def _entitlement(session_factory, user_id="user-1"):
    async with session_factory() as session:
        return await EntitlementStore().get(session, user_id)


class TestSuccess:
    """Outcome Success."""

    @pytest.mark.asyncio
    async def test_completes_and_extends(self, db_session, session_factory, make_attempt, engine):
        attempt_id = await make_attempt()
        before = _metric(
            "nextscene_premium_outcomes_total", provider="paypal", action="APPLIED_COMPLETED"
        )

        result = await engine.reconcile(db_session, PaymentProvider.PAYPAL, _paypal_success(), now=NOW)

        assert result.action is ReconcileAction.APPLIED_COMPLETED
        assert result.applied is True
        assert result.attempt_id == attempt_id
        assert result.state is AttemptState.COMPLETED
        assert result.new_expires_at == datetime(2025, 7, 15, 12, 0, tzinfo=timezone.utc)

        attempt = await _state(session_factory, attempt_id)
        assert attempt.state is AttemptState.COMPLETED
        assert attempt.provider_receipt_id == "CAPTURE-1"
        row = await _entitlement(session_factory)
        assert row.is_premium is True
        assert ensure_utc(row.premium_expires_at) == result.new_expires_at
        after = _metric(
            "nextscene_premium_outcomes_total", provider="paypal", action="APPLIED_COMPLETED"
        )
        assert after == before + 1

    @pytest.mark.asyncio
    async def test_duplicate_success_extends_once(self, db_session, session_factory, make_attempt, engine):
        attempt_id = await make_attempt()

        first = await engine.reconcile(db_session, PaymentProvider.PAYPAL, _paypal_success(), now=NOW)
        second = await engine.reconcile(db_session, PaymentProvider.PAYPAL, _paypal_success(), now=NOW)

        assert first.action is ReconcileAction.APPLIED_COMPLETED
        assert second.action is ReconcileAction.ALREADY_TERMINAL
        assert second.applied is False
        assert second.state is AttemptState.COMPLETED
        row = await _entitlement(session_factory)
        assert ensure_utc(row.premium_expires_at) == add_months(NOW, 1)
        assert (await _state(session_factory, attempt_id)).state is AttemptState.COMPLETED

    @pytest.mark.asyncio
    async def test_stacks_on_active_entitlement(self, db_session, session_factory, make_attempt, engine):
        db_session.add(UserEntitlement(user_id="user-1", is_premium=True, premium_expires_at=NOW + timedelta(days=10)))
        await db_session.commit()
        await make_attempt()

        result = await engine.reconcile(db_session, PaymentProvider.PAYPAL, _paypal_success(), now=NOW)

        assert result.new_expires_at == add_months(NOW + timedelta(days=10), 1)

    @pytest.mark.asyncio
    async def test_annual_plan(self, db_session, make_attempt, engine):
        await make_attempt(plan=PaymentPlan.ANNUAL)

        result = await engine.reconcile(
            db_session, PaymentProvider.PAYPAL, _paypal_success(amount="99.99"), now=NOW
        )

        assert result.action is ReconcileAction.APPLIED_COMPLETED
        assert result.new_expires_at == datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_currency_comparison_ignores_case(self, db_session, make_attempt, engine):
        await make_attempt()

        result = await engine.reconcile(
            db_session, PaymentProvider.PAYPAL, _paypal_success(amount="9.990", currency="usd"), now=NOW
        )

        assert result.action is ReconcileAction.APPLIED_COMPLETED

    @pytest.mark.asyncio
    async def test_unreported_amount_is_not_checked(self, db_session, make_attempt, engine):
        """La consulta STK de M-Pesa no informa monto."""
        await make_attempt(provider=PaymentProvider.MPESA, reference="ws_CO_1")

        result = await engine.reconcile(
            db_session, PaymentProvider.MPESA, Success(provider_reference="ws_CO_1"), now=NOW
        )

        assert result.action is ReconcileAction.APPLIED_COMPLETED

    @pytest.mark.asyncio
    async def test_success_metadata_is_stored(self, db_session, session_factory, make_attempt, engine):
        attempt_id = await make_attempt()
        outcome = Success(
            provider_reference="REF-1",
            receipt_id="CAPTURE-1",
            amount_confirmed=Decimal("9.99"),
            currency_confirmed="USD",
            metadata={"payer_email": "buyer@example.com"},
        )

        await engine.reconcile(db_session, PaymentProvider.PAYPAL, outcome, now=NOW)

        attempt = await _state(session_factory, attempt_id)
        assert attempt.attempt_metadata["payer_email"] == "buyer@example.com"


class TestAmountMismatch:
    """Monto o moneda confirmados distintos a lo registrado."""

    @pytest.mark.asyncio
    async def test_tampered_amount_fails_without_entitlement(
        self, db_session, session_factory, make_attempt, engine, caplog
    ):
        attempt_id = await make_attempt()
        before = _metric("nextscene_premium_amount_mismatch_total", provider="paypal")

        with caplog.at_level(logging.ERROR, logger=ENGINE_LOGGER):
            result = await engine.reconcile(
                db_session, PaymentProvider.PAYPAL, _paypal_success(amount="0.01"), now=NOW
            )

        assert result.action is ReconcileAction.AMOUNT_MISMATCH
        assert result.state is AttemptState.FAILED
        attempt = await _state(session_factory, attempt_id)
        assert attempt.state is AttemptState.FAILED
        assert attempt.failure_reason == REASON_AMOUNT_MISMATCH
        assert attempt.provider_receipt_id is None
        assert attempt.attempt_metadata["confirmed_amount"] == "0.01"
        assert await _entitlement(session_factory) is None
        assert _metric("nextscene_premium_amount_mismatch_total", provider="paypal") == before + 1
        assert "AMOUNT_MISMATCH" in caplog.text

    @pytest.mark.asyncio
    async def test_currency_mismatch(self, db_session, make_attempt, engine):
        await make_attempt()

        result = await engine.reconcile(
            db_session, PaymentProvider.PAYPAL, _paypal_success(currency="EUR"), now=NOW
        )

        assert result.action is ReconcileAction.AMOUNT_MISMATCH

    @pytest.mark.asyncio
    async def test_mismatch_after_completion_is_ignored(self, db_session, make_attempt, engine):
        await make_attempt()
        await engine.reconcile(db_session, PaymentProvider.PAYPAL, _paypal_success(), now=NOW)

        result = await engine.reconcile(
            db_session, PaymentProvider.PAYPAL, _paypal_success(amount="0.01"), now=NOW
        )

        assert result.action is ReconcileAction.ALREADY_TERMINAL
        assert result.state is AttemptState.COMPLETED


class TestFailureAndPending:
    """Outcomes Failure y Pending."""

    @pytest.mark.asyncio
    async def test_failure_marks_failed(self, db_session, session_factory, make_attempt, engine):
        attempt_id = await make_attempt(provider=PaymentProvider.MPESA, reference="ws_CO_1")

        result = await engine.reconcile(
            db_session, PaymentProvider.MPESA, Failure("ws_CO_1", "MPESA_1"), now=NOW
        )

        assert result.action is ReconcileAction.APPLIED_FAILED
        attempt = await _state(session_factory, attempt_id)
        assert attempt.state is AttemptState.FAILED
        assert attempt.failure_reason == "MPESA_1"
        assert await _entitlement(session_factory) is None

    @pytest.mark.asyncio
    async def test_user_cancel_marks_cancelled(self, db_session, session_factory, make_attempt, engine):
        attempt_id = await make_attempt(provider=PaymentProvider.MPESA, reference="ws_CO_1")

        result = await engine.reconcile(
            db_session, PaymentProvider.MPESA, Failure("ws_CO_1", REASON_USER_CANCELLED, cancelled=True), now=NOW
        )

        assert result.action is ReconcileAction.APPLIED_CANCELLED
        attempt = await _state(session_factory, attempt_id)
        assert attempt.state is AttemptState.CANCELLED
        assert attempt.failure_reason == REASON_USER_CANCELLED

    @pytest.mark.asyncio
    async def test_late_failure_does_not_undo_completion(self, db_session, session_factory, make_attempt, engine):
        attempt_id = await make_attempt()
        await engine.reconcile(db_session, PaymentProvider.PAYPAL, _paypal_success(), now=NOW)

        result = await engine.reconcile(
            db_session, PaymentProvider.PAYPAL, Failure("REF-1", "PAYPAL_CAPTURE_DENIED"), now=NOW
        )

        assert result.action is ReconcileAction.ALREADY_TERMINAL
        attempt = await _state(session_factory, attempt_id)
        assert attempt.state is AttemptState.COMPLETED
        assert attempt.failure_reason is None

    @pytest.mark.asyncio
    async def test_pending_changes_nothing(self, db_session, session_factory, make_attempt, engine):
        attempt_id = await make_attempt()

        result = await engine.reconcile(db_session, PaymentProvider.PAYPAL, Pending("REF-1"), now=NOW)

        assert result.action is ReconcileAction.STILL_PENDING
        assert result.applied is False
        assert (await _state(session_factory, attempt_id)).state is AttemptState.PENDING


class TestNotFound:
    """Referencias sin intento en el ledger."""

    @pytest.mark.asyncio
    async def test_unknown_reference(self, db_session, engine, caplog):
        with caplog.at_level(logging.WARNING, logger=ENGINE_LOGGER):
            result = await engine.reconcile(
                db_session, PaymentProvider.PAYPAL, _paypal_success(ref="UNKNOWN"), now=NOW
            )

        assert result.action is ReconcileAction.NOT_FOUND
        assert result.attempt_id is None
        assert "NOT_FOUND" in caplog.text

    @pytest.mark.asyncio
    async def test_reference_of_other_provider(self, db_session, make_attempt, engine):
        await make_attempt(reference="REF-1")

        result = await engine.reconcile(
            db_session, PaymentProvider.MPESA, Success(provider_reference="REF-1"), now=NOW
        )

        assert result.action is ReconcileAction.NOT_FOUND


class TestAtomicity:
    """Ledger y entitlement se confirman juntos o no se confirman."""

    @pytest.mark.asyncio
    async def test_entitlement_error_rolls_back_transition(self, db_session, session_factory, make_attempt):
        class BrokenStore(EntitlementStore):
            async def extend(self, session, user_id, plan, now=None):
                raise RuntimeError("entitlement write failed")

        attempt_id = await make_attempt()
        engine = ReconciliationEngine(entitlements=BrokenStore())

        with pytest.raises(RuntimeError):
            await engine.reconcile(db_session, PaymentProvider.PAYPAL, _paypal_success(), now=NOW)

        assert (await _state(session_factory, attempt_id)).state is AttemptState.PENDING

        # Un reintento posterior (sweep) lo completa normalmente
        result = await ReconciliationEngine().reconcile(
            db_session, PaymentProvider.PAYPAL, _paypal_success(), now=NOW
        )
        assert result.action is ReconcileAction.APPLIED_COMPLETED

    @pytest.mark.asyncio
    async def test_concurrent_close_is_reported_as_terminal(self, db_session, session_factory, make_attempt):
        """Otro canal cierra el intento entre el lookup y el UPDATE: sin extensión."""

        class RacingLedger(PaymentLedger):
            async def find_by_provider_reference(self, session, provider, provider_reference):
                attempt = await super().find_by_provider_reference(session, provider, provider_reference)
                await super().transition_terminal(
                    session, attempt.id, AttemptState.FAILED, failure_reason="PAYPAL_CAPTURE_DENIED"
                )
                return attempt

        attempt_id = await make_attempt()
        engine = ReconciliationEngine(ledger=RacingLedger())

        result = await engine.reconcile(db_session, PaymentProvider.PAYPAL, _paypal_success(), now=NOW)

        assert result.action is ReconcileAction.ALREADY_TERMINAL
        assert result.state is AttemptState.FAILED
        assert (await _state(session_factory, attempt_id)).state is AttemptState.FAILED
        assert await _entitlement(session_factory) is None


class TestResultSerialization:

    @pytest.mark.asyncio
    async def test_to_dict(self, db_session, make_attempt, engine):
        attempt_id = await make_attempt()
        result = await engine.reconcile(db_session, PaymentProvider.PAYPAL, _paypal_success(), now=NOW)

        assert result.to_dict() == {
            "action": "APPLIED_COMPLETED",
            "provider": "paypal",
            "provider_reference": "REF-1",
            "attempt_id": attempt_id,
            "state": "completed",
            "new_expires_at": "2025-07-15T12:00:00Z",
        }
