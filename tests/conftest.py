# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Iterator
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("KEEPALIVE_ENABLED", "false")
os.environ.setdefault("GROUP_ID", "4242")

from fastapi import FastAPI
from fastapi.testclient import TestClient

from playtime_promoter.db.time import utcnow
from playtime_promoter.main import app as fastapi_app
from playtime_promoter.services.engine import PromotionEngine
from playtime_promoter.services.ledger import JsonFileLedgerStorage, PromotionLedger
from playtime_promoter.services.roblox import RankChangeConfirmed
from playtime_promoter.services.tiers import ThresholdTable, ThresholdTier

API_KEY = os.environ["API_KEY"]

SCENARIO_TIERS = [
    ThresholdTier(min_playtime_seconds=3600, target_rank=2),
    ThresholdTier(min_playtime_seconds=7200, target_rank=3),
    ThresholdTier(min_playtime_seconds=12600, target_rank=4),
    ThresholdTier(min_playtime_seconds=21600, target_rank=5),
]


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def threshold_table() -> ThresholdTable:
    return ThresholdTable(SCENARIO_TIERS)


@pytest.fixture()
def ledger_path(tmp_path) -> str:
    return str(tmp_path / "promotion-log.json")


@pytest.fixture()
def ledger(ledger_path: str) -> PromotionLedger:
    return PromotionLedger.load(JsonFileLedgerStorage(ledger_path))


@pytest.fixture()
def rank_reader() -> AsyncMock:
    reader = AsyncMock()
    reader.get_current_rank.return_value = 1
    return reader


@pytest.fixture()
def rank_changer() -> AsyncMock:
    changer = AsyncMock()

    async def _set_rank(user_id: str, target_rank: int, role_id: int | None = None):
        return RankChangeConfirmed(
            user_id=user_id, target_rank=target_rank, role_id=role_id or target_rank, attempts=1
        )

    changer.set_rank.side_effect = _set_rank
    return changer


@pytest.fixture()
def notifier() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def engine(
    threshold_table: ThresholdTable,
    ledger: PromotionLedger,
    rank_reader: AsyncMock,
    rank_changer: AsyncMock,
    notifier: AsyncMock,
) -> PromotionEngine:
    return PromotionEngine(
        table=threshold_table,
        ledger=ledger,
        rank_reader=rank_reader,
        rank_changer=rank_changer,
        notifier=notifier,
    )


@pytest.fixture()
def app(engine: PromotionEngine) -> Iterator[FastAPI]:
    fastapi_app.state.engine = engine
    try:
        yield fastapi_app
    finally:
        fastapi_app.state.engine = None


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    return {"x-api-key": API_KEY}
