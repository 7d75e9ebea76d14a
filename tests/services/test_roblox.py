"""Tests for the Roblox group service client and rank changes."""

from __future__ import annotations

import json

import httpx
import pytest

from playtime_promoter.services.errors import AuthError, RankChangeError, RankLookupError
from playtime_promoter.services.roblox import (
    GroupServiceClient,
    GroupServiceConfig,
    RankChangeClient,
    parse_roblox_error,
)
from playtime_promoter.services.token import TokenLifecycleManager

GROUP_ID = 4242
AUTH_URL = "https://auth.example.test/v2/logout"


def _config(cookie: str | None = "cookie-value") -> GroupServiceConfig:
    return GroupServiceConfig(
        group_id=GROUP_ID,
        groups_base_url="https://groups.example.test",
        auth_url=AUTH_URL,
        cookie=cookie,
        timeout_seconds=5.0,
    )


class FakeGroupApi:
    """Scripted stand-in for the Roblox groups and auth endpoints."""

    def __init__(self) -> None:
        self.patch_statuses: list[int] = []
        self.tokens_issued = 0
        self.patch_tokens: list[str] = []
        self.patch_bodies: list[bytes] = []
        self.memberships: list[dict] = []
        self.roles = [{"id": 900 + r, "name": f"Rank {r}", "rank": r} for r in range(1, 6)]
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == AUTH_URL:
            self.tokens_issued += 1
            return httpx.Response(403, headers={"x-csrf-token": f"csrf-{self.tokens_issued}"})
        path = request.url.path
        if request.method == "GET" and path.endswith("/groups/roles"):
            return httpx.Response(200, json={"data": self.memberships})
        if request.method == "GET" and path == f"/v1/groups/{GROUP_ID}/roles":
            return httpx.Response(200, json={"groupId": GROUP_ID, "roles": self.roles})
        if request.method == "PATCH":
            self.patch_tokens.append(request.headers.get("x-csrf-token"))
            self.patch_bodies.append(request.content)
            status = self.patch_statuses.pop(0) if self.patch_statuses else 200
            if status == 200:
                return httpx.Response(200, json={})
            return httpx.Response(
                status, json={"errors": [{"code": 0, "message": "Token Validation Failed"}]}
            )
        return httpx.Response(404)


@pytest.fixture()
def api() -> FakeGroupApi:
    return FakeGroupApi()


@pytest.fixture()
async def service(api: FakeGroupApi):
    client = GroupServiceClient(_config(), transport=httpx.MockTransport(api.handler))
    try:
        yield client
    finally:
        await client.close()


@pytest.fixture()
def rank_client(service: GroupServiceClient) -> RankChangeClient:
    tokens = TokenLifecycleManager(service.acquire_token, ttl_seconds=300)
    return RankChangeClient(service, tokens)


async def test_current_rank_for_member(api, service):
    api.memberships = [
        {"group": {"id": 1}, "role": {"id": 5, "rank": 200}},
        {"group": {"id": GROUP_ID}, "role": {"id": 901, "rank": 1}},
    ]
    assert await service.get_current_rank("1001") == 1
    assert api.requests[0].headers["cookie"] == ".ROBLOSECURITY=cookie-value"


async def test_current_rank_for_non_member(api, service):
    api.memberships = [{"group": {"id": 1}, "role": {"id": 5, "rank": 200}}]
    assert await service.get_current_rank("1001") is None


async def test_rank_lookup_failure_raises():
    service = GroupServiceClient(
        _config(), transport=httpx.MockTransport(lambda request: httpx.Response(500))
    )
    with pytest.raises(RankLookupError):
        await service.get_current_rank("1001")
    await service.close()


async def test_acquire_token_reads_csrf_header(service):
    assert await service.acquire_token() == "csrf-1"


async def test_acquire_token_without_header_fails():
    service = GroupServiceClient(
        _config(), transport=httpx.MockTransport(lambda request: httpx.Response(401))
    )
    with pytest.raises(AuthError) as excinfo:
        await service.acquire_token()
    assert excinfo.value.cause == "http_401"
    await service.close()


async def test_acquire_token_without_cookie_fails(api):
    service = GroupServiceClient(_config(cookie=None), transport=httpx.MockTransport(api.handler))
    with pytest.raises(AuthError):
        await service.acquire_token()
    assert api.tokens_issued == 0


async def test_set_rank_success_uses_one_token(api, rank_client):
    confirmed = await rank_client.set_rank("1001", 2, role_id=902)

    assert confirmed.attempts == 1
    assert api.tokens_issued == 1
    assert api.patch_tokens == ["csrf-1"]
    assert [json.loads(body) for body in api.patch_bodies] == [{"roleId": 902}]


async def test_set_rank_resolves_role_id_from_rank(api, rank_client):
    confirmed = await rank_client.set_rank("1001", 3)
    assert confirmed.role_id == 903
    await rank_client.set_rank("1001", 4)
    role_list_calls = [r for r in api.requests if r.url.path == f"/v1/groups/{GROUP_ID}/roles"]
    assert len(role_list_calls) == 1


async def test_unknown_rank_is_a_rank_change_error(rank_client):
    with pytest.raises(RankChangeError) as excinfo:
        await rank_client.set_rank("1001", 77)
    assert excinfo.value.cause == "unknown_rank"


async def test_auth_rejection_refreshes_once_and_retries_once(api, rank_client):
    api.patch_statuses = [403, 200]

    confirmed = await rank_client.set_rank("1001", 2, role_id=902)

    assert confirmed.attempts == 2
    assert api.tokens_issued == 2
    assert api.patch_tokens == ["csrf-1", "csrf-2"]


async def test_second_rejection_is_terminal(api, rank_client):
    api.patch_statuses = [403, 403, 200]

    with pytest.raises(RankChangeError) as excinfo:
        await rank_client.set_rank("1001", 2, role_id=902)

    assert excinfo.value.status == 403
    assert excinfo.value.cause == "Token Validation Failed"
    assert api.tokens_issued == 2
    assert len(api.patch_tokens) == 2


async def test_other_failures_are_not_retried(api, rank_client):
    api.patch_statuses = [400]

    with pytest.raises(RankChangeError) as excinfo:
        await rank_client.set_rank("1001", 2, role_id=902)

    assert excinfo.value.status == 400
    assert len(api.patch_tokens) == 1
    assert api.tokens_issued == 1


async def test_timeout_is_a_rank_change_error(api):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PATCH":
            raise httpx.ReadTimeout("timed out", request=request)
        return api.handler(request)

    service = GroupServiceClient(_config(), transport=httpx.MockTransport(handler))
    client = RankChangeClient(service, TokenLifecycleManager(service.acquire_token))

    with pytest.raises(RankChangeError) as excinfo:
        await client.set_rank("1001", 2, role_id=902)
    assert excinfo.value.status is None
    assert excinfo.value.cause == "ReadTimeout"
    await service.close()


def test_parse_roblox_error_prefers_user_facing_message():
    response = httpx.Response(
        400,
        json={"errors": [{"message": "internal", "userFacingMessage": "Something went wrong"}]},
    )
    assert parse_roblox_error(response) == "Something went wrong"
    assert parse_roblox_error(httpx.Response(502, text="bad gateway")) == "Roblox API error 502"
