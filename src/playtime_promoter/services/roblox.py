"""Roblox group service client.

This module wraps the calls the promotion engine makes against the Roblox
groups API:

- reading a user's current rank in the tracked group
- exchanging the long-lived cookie for a short-lived CSRF token
- resolving a rank ordinal to the group's role id
- changing a user's role, with a single retry after a token refresh
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from playtime_promoter.core.settings import settings
from playtime_promoter.services.errors import AuthError, RankChangeError, RankLookupError
from playtime_promoter.services.token import TokenLifecycleManager

logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403

# Responses that mean the CSRF token (or cookie) was not accepted
AUTH_REJECTED_STATUSES = frozenset({HTTP_UNAUTHORIZED, HTTP_FORBIDDEN})

CSRF_HEADER = "x-csrf-token"
COOKIE_NAME = ".ROBLOSECURITY"


@dataclass(frozen=True)
class GroupServiceConfig:
    """Immutable configuration for group service calls."""

    group_id: int
    groups_base_url: str
    auth_url: str
    cookie: str | None
    timeout_seconds: float


@dataclass(frozen=True)
class RankChangeConfirmed:
    """Successful rank mutation as reported by the group service."""

    user_id: str
    target_rank: int
    role_id: int
    attempts: int


def load_group_service_config() -> GroupServiceConfig:
    """Build configuration object from global settings."""

    return GroupServiceConfig(
        group_id=settings.group_id,
        groups_base_url=settings.roblox_groups_base_url,
        auth_url=settings.roblox_auth_url,
        cookie=settings.roblox_cookie.get_secret_value() if settings.roblox_cookie else None,
        timeout_seconds=float(settings.roblox_http_timeout_seconds),
    )


def parse_roblox_error(response: httpx.Response) -> str:
    """Extract the most readable error message from a Roblox API response."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, Mapping):
        errors = payload.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], Mapping):
            info = errors[0]
            message = info.get("userFacingMessage") or info.get("message")
            if message:
                return str(message)
    return f"Roblox API error {response.status_code}"


class GroupServiceClient:
    """HTTP client wrapper for the Roblox groups and auth endpoints."""

    def __init__(
        self,
        config: GroupServiceConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_group_service_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._role_ids: dict[int, int] | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                headers = {"Accept": "application/json"}
                if self.config.cookie:
                    headers["Cookie"] = f"{COOKIE_NAME}={self.config.cookie}"
                self._client = httpx.AsyncClient(
                    base_url=self.config.groups_base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    headers=headers,
                    transport=self._transport,
                )
        return self._client

    async def get_current_rank(self, user_id: str) -> int | None:
        """Return the user's rank ordinal in the group, or None if not a member.

        Raises:
            RankLookupError: The group service could not be queried
        """
        client = await self._ensure_client()
        try:
            response = await client.get(f"/v2/users/{user_id}/groups/roles")
        except httpx.HTTPError as exc:
            raise RankLookupError(f"Rank lookup for user {user_id} failed: {exc}") from exc

        if response.status_code != HTTP_OK:
            raise RankLookupError(
                f"Rank lookup for user {user_id} returned {response.status_code}: "
                f"{parse_roblox_error(response)}"
            )

        try:
            memberships: list[dict[str, Any]] = response.json().get("data", [])
            for membership in memberships:
                if int(membership["group"]["id"]) == self.config.group_id:
                    rank = int(membership["role"]["rank"])
                    return rank if rank > 0 else None
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise RankLookupError(f"Unexpected rank lookup payload for user {user_id}") from exc
        return None

    async def acquire_token(self) -> str:
        """Exchange the cookie for a CSRF token.

        The auth endpoint rejects the unauthenticated logout request and hands
        the token back in a response header.

        Raises:
            AuthError: No token could be obtained
        """
        if not self.config.cookie:
            raise AuthError("No group service credential configured", cause="missing_cookie")

        client = await self._ensure_client()
        try:
            response = await client.post(self.config.auth_url)
        except httpx.HTTPError as exc:
            raise AuthError("Token request failed", cause=type(exc).__name__) from exc

        token = response.headers.get(CSRF_HEADER)
        if not token:
            raise AuthError(
                f"Auth endpoint returned {response.status_code} without a token",
                cause=f"http_{response.status_code}",
            )
        return token

    async def resolve_role_id(self, rank: int) -> int:
        """Map a rank ordinal to the group's role id.

        Raises:
            RankChangeError: The roles could not be read or no role has ``rank``
        """
        if self._role_ids is None:
            client = await self._ensure_client()
            try:
                response = await client.get(f"/v1/groups/{self.config.group_id}/roles")
            except httpx.HTTPError as exc:
                raise RankChangeError(
                    f"Role list request failed: {exc}", cause=type(exc).__name__
                ) from exc
            if response.status_code != HTTP_OK:
                raise RankChangeError(
                    "Role list request failed",
                    status=response.status_code,
                    cause=parse_roblox_error(response),
                )
            try:
                roles = response.json().get("roles", [])
                self._role_ids = {int(role["rank"]): int(role["id"]) for role in roles}
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                raise RankChangeError(
                    "Unexpected role list payload", cause="bad_role_list"
                ) from exc

        try:
            return self._role_ids[rank]
        except KeyError:
            raise RankChangeError(
                f"Group {self.config.group_id} has no role with rank {rank}",
                cause="unknown_rank",
            ) from None

    async def patch_role(self, user_id: str, role_id: int, token: str) -> httpx.Response:
        """Set the user's role; the response is returned for status inspection.

        Raises:
            RankChangeError: The request did not complete (network error or timeout)
        """
        client = await self._ensure_client()
        try:
            return await client.patch(
                f"/v1/groups/{self.config.group_id}/users/{user_id}",
                json={"roleId": role_id},
                headers={"X-CSRF-TOKEN": token},
            )
        except httpx.HTTPError as exc:
            raise RankChangeError(
                f"Rank change request for user {user_id} failed: {exc}",
                cause=type(exc).__name__,
            ) from exc

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class RankChangeClient:
    """Performs authenticated rank mutations with one retry after refresh."""

    def __init__(self, service: GroupServiceClient, tokens: TokenLifecycleManager) -> None:
        self._service = service
        self._tokens = tokens

    async def set_rank(
        self, user_id: str, target_rank: int, role_id: int | None = None
    ) -> RankChangeConfirmed:
        """Move ``user_id`` to ``target_rank``.

        A rejected token is refreshed and the mutation retried exactly once.

        Raises:
            AuthError: A token could not be acquired
            RankChangeError: The mutation failed, including a second rejection
        """
        if role_id is None:
            role_id = await self._service.resolve_role_id(target_rank)

        token = await self._tokens.get_valid_token()
        response = await self._service.patch_role(user_id, role_id, token.value)
        attempts = 1

        if response.status_code in AUTH_REJECTED_STATUSES:
            logger.info(
                "Rank change for user %s rejected with %d; refreshing token",
                user_id,
                response.status_code,
            )
            self._tokens.invalidate(token)
            token = await self._tokens.get_valid_token()
            response = await self._service.patch_role(user_id, role_id, token.value)
            attempts += 1

        if response.status_code != HTTP_OK:
            raise RankChangeError(
                f"Rank change for user {user_id} to rank {target_rank} failed",
                status=response.status_code,
                cause=parse_roblox_error(response),
            )

        return RankChangeConfirmed(
            user_id=user_id,
            target_rank=target_rank,
            role_id=role_id,
            attempts=attempts,
        )
