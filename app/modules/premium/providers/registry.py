# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/providers/registry.py

Registro de adaptadores por proveedor.

Un único adaptador por proveedor y por proceso (cliente HTTP y cache de
token compartidos). Se construye en el lifespan y se cierra en shutdown.

Autor: DoxAI
Fecha: 2025-12-13
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional

import httpx

from app.shared.config.settings_premium import PremiumSettings, get_premium_settings
from app.modules.premium.enums import PaymentProvider
from app.modules.premium.errors import ProviderNotConfigured
from app.modules.premium.providers.base import PaymentProviderAdapter
from app.modules.premium.providers.mpesa_provider import MpesaProvider
from app.modules.premium.providers.paypal_provider import PayPalProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Mapa PaymentProvider -> adaptador."""

    def __init__(self, adapters: Optional[Dict[PaymentProvider, PaymentProviderAdapter]] = None) -> None:
        self._adapters: Dict[PaymentProvider, PaymentProviderAdapter] = dict(adapters or {})

    def register(self, adapter: PaymentProviderAdapter) -> None:
        self._adapters[adapter.provider] = adapter

    def get(self, provider: PaymentProvider | str) -> PaymentProviderAdapter:
        """Adaptador del proveedor. Lanza ProviderNotConfigured si falta."""
        try:
            key = PaymentProvider(provider)
        except ValueError as e:
            raise ProviderNotConfigured(f"proveedor desconocido: {provider!r}") from e
        adapter = self._adapters.get(key)
        if adapter is None:
            raise ProviderNotConfigured(f"proveedor no registrado: {key.value}")
        return adapter

    def require_configured(self, provider: PaymentProvider | str) -> PaymentProviderAdapter:
        adapter = self.get(provider)
        if not adapter.is_configured:
            raise ProviderNotConfigured(f"proveedor sin credenciales o deshabilitado: {adapter.provider.value}")
        return adapter

    def __iter__(self) -> Iterator[PaymentProviderAdapter]:
        return iter(self._adapters.values())

    def __contains__(self, provider: object) -> bool:
        return provider in self._adapters

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            try:
                await adapter.aclose()
            except Exception as e:
                logger.warning("provider_close_failed provider=%s error=%s", adapter.provider.value, e)


def build_provider_registry(
    settings: Optional[PremiumSettings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> ProviderRegistry:
    """Construye PayPal y M-Pesa a partir de la configuración."""
    s = settings or get_premium_settings()
    registry = ProviderRegistry()
    registry.register(PayPalProvider(s, transport=transport, sleep=sleep))
    registry.register(MpesaProvider(s, transport=transport, sleep=sleep))

    for adapter in registry:
        logger.info(
            "premium_provider_registered provider=%s configured=%s",
            adapter.provider.value,
            adapter.is_configured,
        )
    return registry


__all__ = ["ProviderRegistry", "build_provider_registry"]
