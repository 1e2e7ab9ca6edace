# -*- coding: utf-8 -*-
"""
backend/tests/modules/premium/providers/test_token_cache.py

Tests del cache de access token OAuth.

Autor: DoxAI
Fecha: 2025-12-29
"""

import asyncio

import pytest

from app.modules.premium.providers.token_cache import AccessTokenCache, MIN_TTL_SECONDS


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _fetcher(tokens, expires_in=3600):
    calls = []

    async def fetch():
        calls.append(1)
        await asyncio.sleep(0)
        return tokens[len(calls) - 1], expires_in

    return fetch, calls


class TestAccessTokenCache:

    @pytest.mark.asyncio
    async def test_concurrent_callers_fetch_once(self):
        cache = AccessTokenCache("paypal")
        fetch, calls = _fetcher(["tok-1"])

        tokens = await asyncio.gather(*(cache.get(fetch) for _ in range(10)))

        assert set(tokens) == {"tok-1"}
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_token_expires_before_provider_ttl(self):
        """expires_in=3600 con margen de 300s: válido hasta +3300s."""
        clock = FakeClock()
        cache = AccessTokenCache("paypal", clock=clock)
        fetch, calls = _fetcher(["tok-1", "tok-2"])

        assert await cache.get(fetch) == "tok-1"

        clock.now += 3299
        assert await cache.get(fetch) == "tok-1"

        clock.now += 1
        assert await cache.get(fetch) == "tok-2"
        assert len(calls) == 2

    def test_short_lived_token_has_ttl_floor(self):
        clock = FakeClock()
        cache = AccessTokenCache("mpesa", clock=clock)

        cache.store("tok", expires_in=30)

        clock.now += MIN_TTL_SECONDS - 1
        assert cache.peek() == "tok"
        clock.now += 1
        assert cache.peek() is None

    def test_invalidate_only_drops_matching_token(self):
        cache = AccessTokenCache("paypal")
        cache.store("current", expires_in=3600)

        cache.invalidate("stale")
        assert cache.peek() == "current"

        cache.invalidate("current")
        assert cache.peek() is None

    def test_invalidate_without_token_always_drops(self):
        cache = AccessTokenCache("paypal")
        cache.store("current", expires_in=3600)

        cache.invalidate()

        assert cache.peek() is None
