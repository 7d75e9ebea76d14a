"""Lifecycle of the short-lived group-service token.

Rank mutations must carry a CSRF token that the group service hands out in
exchange for the long-lived cookie. Tokens expire after a few minutes, so the
manager caches the current one, refreshes it once it is older than the TTL,
and lets the rank-change client force a refresh after a rejection.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from playtime_promoter.db.time import utcnow
from playtime_promoter.services.errors import AuthError

logger = logging.getLogger(__name__)


class TokenState(Enum):
    """Token states as seen by callers."""

    UNSET = "unset"
    VALID = "valid"
    STALE = "stale"


@dataclass(frozen=True)
class AuthToken:
    """Opaque token and the moment it was handed out."""

    value: str
    acquired_at: datetime

    def __repr__(self) -> str:
        return f"AuthToken(value=<redacted>, acquired_at={self.acquired_at.isoformat()})"


class TokenLifecycleManager:
    """Caches one ``AuthToken`` and serializes its acquisition.

    Concurrent callers that find the token stale wait on the same refresh
    instead of each acquiring a new token.
    """

    def __init__(
        self,
        acquire: Callable[[], Awaitable[str]],
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._acquire = acquire
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._token: AuthToken | None = None
        self._invalidated = False
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def state(self) -> TokenState:
        if self._token is None:
            return TokenState.UNSET
        if self._is_stale(self._token):
            return TokenState.STALE
        return TokenState.VALID

    def _is_stale(self, token: AuthToken) -> bool:
        return self._invalidated or self._clock() - token.acquired_at > self._ttl

    async def get_valid_token(self) -> AuthToken:
        """Return the cached token, acquiring a fresh one if needed.

        Raises:
            AuthError: Acquisition failed; the manager stays unset or stale
        """
        token = self._token
        if token is not None and not self._is_stale(token):
            return token

        async with self._lock:
            # Another caller may have refreshed while we waited.
            token = self._token
            if token is not None and not self._is_stale(token):
                return token
            return await self._refresh()

    def invalidate(self, token: AuthToken | None = None) -> None:
        """Force the next ``get_valid_token`` call to acquire a new token.

        When ``token`` is given, only that token is invalidated; a newer token
        acquired by another caller in the meantime is left alone.
        """
        if self._token is None:
            return
        if token is not None and token is not self._token:
            return
        self._invalidated = True

    async def _refresh(self) -> AuthToken:
        try:
            value = await self._acquire()
        except AuthError:
            logger.warning("Group service token acquisition failed")
            raise
        if not value:
            raise AuthError("Group service returned an empty token", cause="empty_token")

        token = AuthToken(value=value, acquired_at=self._clock())
        self._token = token
        self._invalidated = False
        self.refresh_count += 1
        logger.debug("Acquired group service token (refresh #%d)", self.refresh_count)
        return token
