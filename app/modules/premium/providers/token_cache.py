# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/providers/token_cache.py

Cache de access token OAuth (client-credentials) por instancia de adaptador.

- TTL = expires_in - margen (5 min), con piso de 60s, para que el token no
  expire a mitad de un request.
- Un asyncio.Lock evita que N requests concurrentes pidan N tokens.
- invalidate(token) tras un 401: solo descarta si el token cacheado sigue
  siendo el rechazado (otro request pudo haberlo renovado ya).

NOTA: con múltiples réplicas cada una mantiene su propio cache.

Autor: DoxAI
Fecha: 2025-12-13
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_MARGIN_SECONDS = 300
MIN_TTL_SECONDS = 60

# fetcher() -> (access_token, expires_in_seconds)
TokenFetcher = Callable[[], Awaitable[Tuple[str, int]]]


class AccessTokenCache:
    """Token + expiración, propiedad de un único adaptador."""

    def __init__(
        self,
        name: str,
        margin_seconds: int = DEFAULT_MARGIN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.margin_seconds = margin_seconds
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    def peek(self) -> Optional[str]:
        """Token vigente o None (sin refrescar)."""
        if self._token is not None and self._clock() < self._expires_at:
            return self._token
        return None

    def store(self, token: str, expires_in: int) -> None:
        ttl = max(int(expires_in) - self.margin_seconds, MIN_TTL_SECONDS)
        self._token = token
        self._expires_at = self._clock() + ttl
        logger.debug("token_cached provider=%s ttl=%ss", self.name, ttl)

    async def get(self, fetcher: TokenFetcher) -> str:
        """Devuelve el token cacheado o lo obtiene con `fetcher`."""
        token = self.peek()
        if token is not None:
            return token

        async with self._lock:
            # Otro coroutine pudo haberlo renovado mientras esperábamos
            token = self.peek()
            if token is not None:
                return token
            token, expires_in = await fetcher()
            self.store(token, expires_in)
            return token

    def invalidate(self, token: Optional[str] = None) -> None:
        if token is None or token == self._token:
            self._token = None
            self._expires_at = 0.0
            logger.info("token_invalidated provider=%s", self.name)


__all__ = ["AccessTokenCache", "TokenFetcher", "DEFAULT_MARGIN_SECONDS", "MIN_TTL_SECONDS"]
