# backend/tests/conftest.py
# -*- coding: utf-8 -*-
"""
Config global de tests para NextScene Premium.

- Variables de entorno de prueba ANTES de importar la app (PYTHON_ENV=test,
  SQLite en memoria, JWT de prueba)
- Base SQLite en memoria por test (aiosqlite + StaticPool), tablas creadas
  desde Base.metadata
- Adaptadores de proveedor falsos (sin red) y registro para inyectarlos
- Cliente httpx contra la app con dependency_overrides (sin lifespan)
"""

import os
import pathlib
import sys
from collections.abc import AsyncIterator
from decimal import Decimal
from typing import Any, Mapping, Optional

import pytest

# -----------------------------------------------------------------------------
# 0) Variables mínimas de entorno (antes de cualquier import de app.*)
# -----------------------------------------------------------------------------
os.environ["PYTHON_ENV"] = "test"
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-for-premium-suite-please-change")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.pop("PAYMENTS_ALLOW_INSECURE_WEBHOOKS", None)

# -----------------------------------------------------------------------------
# 1) Asegura .../backend en sys.path
# -----------------------------------------------------------------------------
BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
assert (BACKEND_ROOT / "app").exists(), f"'app' no existe en {BACKEND_ROOT}"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.shared.config.settings_premium import PremiumSettings
from app.shared.database.base import Base
from app.shared.database.database import build_engine, build_sessionmaker, get_async_session
from app.modules.auth.security import create_access_token
from app.modules.premium.enums import PaymentPlan, PaymentProvider
from app.modules.premium.plans import get_plan_price
from app.modules.premium.providers.base import (
    ChargeResult,
    Outcome,
    PaymentProviderAdapter,
    Pending,
)
from app.modules.premium.providers.registry import ProviderRegistry
from app.modules.premium.repositories import PaymentLedger

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# -----------------------------------------------------------------------------
# 2) Base de datos
# -----------------------------------------------------------------------------
@pytest.fixture
async def db_engine():
    """Engine SQLite en memoria con el esquema Premium creado."""
    import app.modules.premium.models  # noqa: F401  (registra tablas)

    engine = build_engine(TEST_DB_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(db_engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


# -----------------------------------------------------------------------------
# 3) Configuración Premium de pruebas
# -----------------------------------------------------------------------------
@pytest.fixture
def premium_settings() -> PremiumSettings:
    return PremiumSettings(
        public_base_url="https://api.test",
        frontend_url="https://app.test",
        paypal_enabled=True,
        paypal_client_id="paypal-client-id",
        paypal_client_secret="paypal-client-secret",
        paypal_env="sandbox",
        paypal_webhook_id="WH-TEST",
        mpesa_enabled=True,
        mpesa_consumer_key="mpesa-key",
        mpesa_consumer_secret="mpesa-secret",
        mpesa_shortcode="174379",
        mpesa_passkey="test-passkey",
        mpesa_env="sandbox",
        mpesa_callback_token="cb-token",
        allow_insecure_webhooks=False,
    )


# -----------------------------------------------------------------------------
# 4) Adaptadores falsos
# -----------------------------------------------------------------------------
def _resolve(value: Any) -> Any:
    if isinstance(value, BaseException):
        raise value
    return value


class FakeProviderAdapter(PaymentProviderAdapter):
    """
    Adaptador en memoria.

    Cada operación devuelve lo configurado (o lanza si se configuró una
    excepción) y queda registrada en `calls`.
    """

    def __init__(self, provider: PaymentProvider, *, configured: bool = True) -> None:
        self.provider = PaymentProvider(provider)
        self.configured = configured
        self.charge_error: Optional[BaseException] = None
        self.next_reference: Optional[str] = None
        self.poll_results: dict[str, Any] = {}
        self.capture_results: dict[str, Any] = {}
        self.callback_result: Any = None
        self.calls: list[tuple[str, Any]] = []
        self.closed = False
        self._counter = 0

    @property
    def is_configured(self) -> bool:
        return self.configured

    def calls_to(self, operation: str) -> list[Any]:
        return [arg for name, arg in self.calls if name == operation]

    async def create_charge(
        self,
        *,
        attempt_id: str,
        user_id: str,
        plan: PaymentPlan,
        amount: Decimal,
        currency: str,
        phone_number: Optional[str] = None,
    ) -> ChargeResult:
        self.calls.append((
            "create_charge",
            {
                "attempt_id": attempt_id,
                "user_id": user_id,
                "plan": plan,
                "amount": amount,
                "currency": currency,
                "phone_number": phone_number,
            },
        ))
        if self.charge_error is not None:
            raise self.charge_error

        self._counter += 1
        reference = self.next_reference or f"{self.provider.value}-ref-{self._counter}"
        self.next_reference = None
        if self.provider is PaymentProvider.PAYPAL:
            action = {"type": "redirect", "url": f"https://paypal.test/approve/{reference}"}
        else:
            action = {"type": "phone_prompt", "message": "Check your phone"}
        return ChargeResult(provider_reference=reference, user_facing_action=action)

    async def poll_status(self, provider_reference: str) -> Outcome:
        self.calls.append(("poll_status", provider_reference))
        return _resolve(self.poll_results.get(provider_reference, Pending(provider_reference)))

    async def capture_return(self, provider_reference: str) -> Outcome:
        self.calls.append(("capture_return", provider_reference))
        if provider_reference in self.capture_results:
            return _resolve(self.capture_results[provider_reference])
        return _resolve(self.poll_results.get(provider_reference, Pending(provider_reference)))

    async def parse_callback(
        self,
        raw_payload: bytes,
        headers: Mapping[str, str],
        params: Optional[Mapping[str, str]] = None,
    ) -> Outcome:
        self.calls.append(("parse_callback", raw_payload))
        return _resolve(self.callback_result)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_paypal() -> FakeProviderAdapter:
    return FakeProviderAdapter(PaymentProvider.PAYPAL)


@pytest.fixture
def fake_mpesa() -> FakeProviderAdapter:
    return FakeProviderAdapter(PaymentProvider.MPESA)


@pytest.fixture
def fake_registry(fake_paypal, fake_mpesa) -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(fake_paypal)
    registry.register(fake_mpesa)
    return registry


# -----------------------------------------------------------------------------
# 5) Siembra de intentos en el ledger
# -----------------------------------------------------------------------------
@pytest.fixture
def make_attempt(session_factory, premium_settings):
    """
    Crea un intento pending (con referencia salvo reference=None) y hace commit.

    Devuelve el attempt_id.
    """

    async def _make(
        *,
        user_id: str = "user-1",
        provider: PaymentProvider = PaymentProvider.PAYPAL,
        plan: PaymentPlan = PaymentPlan.MONTHLY,
        reference: Optional[str] = "REF-1",
        amount: Optional[Decimal] = None,
    ) -> str:
        price = get_plan_price(plan, provider, premium_settings)
        ledger = PaymentLedger()
        async with session_factory() as session:
            attempt_id = await ledger.create_pending(
                session,
                user_id=user_id,
                plan=plan,
                amount=amount if amount is not None else price.amount,
                currency=price.currency,
                provider=provider,
            )
            if reference is not None:
                await ledger.attach_provider_reference(session, attempt_id, reference)
            await session.commit()
        return attempt_id

    return _make


# -----------------------------------------------------------------------------
# 6) App FastAPI y cliente httpx
# -----------------------------------------------------------------------------
@pytest.fixture
def app(session_factory, fake_registry, premium_settings):
    """
    App con dependencias reemplazadas: sesión de la base en memoria,
    adaptadores falsos y configuración Premium de pruebas.
    """
    from app.main import create_app
    from app.modules.premium.routes.dependencies import get_provider_registry, get_settings_dep

    fastapi_app = create_app()

    async def _session_override() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_async_session] = _session_override
    fastapi_app.dependency_overrides[get_provider_registry] = lambda: fake_registry
    fastapi_app.dependency_overrides[get_settings_dep] = lambda: premium_settings
    return fastapi_app


@pytest.fixture
async def async_client(app) -> AsyncIterator[AsyncClient]:
    """Cliente HTTP asíncrono con ASGITransport (sin startup/shutdown)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def auth_headers():
    """Factory de headers Authorization: Bearer <jwt> para un user_id."""

    def _headers(user_id: str = "user-1") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers
