"""Promotion engine.

Turns a playtime report into rank changes: every tier the reported playtime
reaches, and whose rank is above the user's current rank, is applied in
ascending order unless the ledger says it already was. Each tier is attempted
independently, so one failed rank change does not stop the tiers after it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from playtime_promoter.services.errors import (
    AuthError,
    NotifyError,
    PersistenceError,
    RankChangeError,
    ReportValidationError,
)
from playtime_promoter.services.ledger import PromotionLedger
from playtime_promoter.services.notifier import Notifier, PromotionEvent
from playtime_promoter.services.roblox import RankChangeConfirmed
from playtime_promoter.services.tiers import ThresholdTable

logger = logging.getLogger(__name__)


class OutcomeStatus(Enum):
    """Result of one tier attempt."""

    PROMOTED = "promoted"
    FAILED = "failed"
    # The rank change went through but could not be recorded in the ledger.
    LEDGER_WRITE_FAILED = "ledger_write_failed"


@dataclass(frozen=True)
class PlaytimeReport:
    """Cumulative playtime reported for one user."""

    user_id: Any
    playtime_seconds: Any


@dataclass(frozen=True)
class PromotionOutcome:
    """What happened to a single eligible tier."""

    target_rank: int
    previous_rank: int
    status: OutcomeStatus
    detail: str | None = None
    http_status: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is not OutcomeStatus.FAILED


@dataclass
class ReportResult:
    """Outcomes of one processed report, in ascending tier order."""

    user_id: str
    playtime_seconds: int
    is_member: bool
    current_rank: int | None = None
    outcomes: list[PromotionOutcome] = field(default_factory=list)


class RankReader(Protocol):
    async def get_current_rank(self, user_id: str) -> int | None:
        """Return the rank ordinal, or None when the user is not in the group."""


class RankChanger(Protocol):
    async def set_rank(
        self, user_id: str, target_rank: int, role_id: int | None = None
    ) -> RankChangeConfirmed:
        """Apply ``target_rank`` to ``user_id``."""


def validate_report(report: PlaytimeReport) -> tuple[str, int]:
    """Return the normalized (user id, playtime) of ``report``.

    Raises:
        ReportValidationError: The user id is empty or the playtime is not a
            non-negative integer
    """
    user_id = "" if report.user_id is None else str(report.user_id).strip()
    if not user_id:
        raise ReportValidationError("userId is required")

    playtime = report.playtime_seconds
    if isinstance(playtime, float) and playtime.is_integer():
        playtime = int(playtime)
    if isinstance(playtime, bool) or not isinstance(playtime, int):
        raise ReportValidationError("playtime must be an integer number of seconds")
    if playtime < 0:
        raise ReportValidationError("playtime must be non-negative")
    return user_id, playtime


class PromotionEngine:
    """Drives ledger checks, rank changes and announcements for reports."""

    def __init__(
        self,
        table: ThresholdTable,
        ledger: PromotionLedger,
        rank_reader: RankReader,
        rank_changer: RankChanger,
        notifier: Notifier,
    ) -> None:
        self.table = table
        self.ledger = ledger
        self._rank_reader = rank_reader
        self._rank_changer = rank_changer
        self._notifier = notifier
        self._user_locks: dict[str, asyncio.Lock] = {}
        self._user_lock_users: dict[str, int] = {}
        self._pending_notifications: set[asyncio.Task[None]] = set()

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        lock = self._user_locks.setdefault(user_id, asyncio.Lock())
        self._user_lock_users[user_id] = self._user_lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._user_lock_users[user_id] - 1
            if remaining:
                self._user_lock_users[user_id] = remaining
            else:
                del self._user_lock_users[user_id]
                del self._user_locks[user_id]

    async def process_report(self, report: PlaytimeReport) -> ReportResult:
        """Apply every newly reached tier for the reported user.

        Raises:
            ReportValidationError: The report is malformed
            RankLookupError: The user's current rank could not be read
            AuthError: No token could be acquired before any rank changed
        """
        user_id, playtime = validate_report(report)
        logger.info("User %s | Playtime: %d minutes", user_id, playtime // 60)

        current_rank = await self._rank_reader.get_current_rank(user_id)
        if current_rank is None:
            logger.info("User %s not in group - skipping", user_id)
            return ReportResult(user_id=user_id, playtime_seconds=playtime, is_member=False)

        result = ReportResult(
            user_id=user_id,
            playtime_seconds=playtime,
            is_member=True,
            current_rank=current_rank,
        )

        async with self._user_lock(user_id):
            eligible = [
                tier
                for tier in self.table.tiers_at_or_below(playtime)
                if tier.target_rank > current_rank
            ]
            previous_rank = current_rank
            for tier in eligible:
                if self.ledger.is_applied(user_id, tier.target_rank):
                    continue
                try:
                    outcome = await self._apply_tier(
                        user_id, previous_rank, tier.target_rank, tier.role_id, playtime
                    )
                except AuthError as exc:
                    if previous_rank == current_rank:
                        raise
                    # Earlier tiers already changed the rank; report them and
                    # leave the rest for the next report.
                    logger.error(
                        "Promotion stopped for user %s at rank %d: %s",
                        user_id,
                        tier.target_rank,
                        exc.cause or exc,
                    )
                    result.outcomes.append(
                        PromotionOutcome(
                            target_rank=tier.target_rank,
                            previous_rank=previous_rank,
                            status=OutcomeStatus.FAILED,
                            detail=exc.cause or str(exc),
                        )
                    )
                    break
                result.outcomes.append(outcome)
                if outcome.succeeded:
                    previous_rank = tier.target_rank

        return result

    async def _apply_tier(
        self,
        user_id: str,
        previous_rank: int,
        target_rank: int,
        role_id: int | None,
        playtime: int,
    ) -> PromotionOutcome:
        try:
            await self._rank_changer.set_rank(user_id, target_rank, role_id)
        except RankChangeError as exc:
            logger.error(
                "Promotion failed: user %s rank %d status %s: %s",
                user_id,
                target_rank,
                exc.status,
                exc.cause or exc,
            )
            return PromotionOutcome(
                target_rank=target_rank,
                previous_rank=previous_rank,
                status=OutcomeStatus.FAILED,
                detail=exc.cause or str(exc),
                http_status=exc.status,
            )

        logger.info("Promoted %s to rank %d", user_id, target_rank)
        try:
            await asyncio.to_thread(self.ledger.record_applied, user_id, target_rank)
        except PersistenceError as exc:
            logger.critical(
                "User %s was promoted to rank %d but the ledger write failed; "
                "the promotion may be attempted again: %s",
                user_id,
                target_rank,
                exc,
            )
            outcome = PromotionOutcome(
                target_rank=target_rank,
                previous_rank=previous_rank,
                status=OutcomeStatus.LEDGER_WRITE_FAILED,
                detail=str(exc),
            )
        else:
            outcome = PromotionOutcome(
                target_rank=target_rank,
                previous_rank=previous_rank,
                status=OutcomeStatus.PROMOTED,
            )

        self._spawn_notification(
            PromotionEvent(
                user_id=user_id,
                previous_rank=previous_rank,
                new_rank=target_rank,
                playtime_seconds=playtime,
            )
        )
        return outcome

    def _spawn_notification(self, event: PromotionEvent) -> None:
        task = asyncio.create_task(self._deliver(event))
        self._pending_notifications.add(task)
        task.add_done_callback(self._notification_done)

    async def _deliver(self, event: PromotionEvent) -> None:
        try:
            await self._notifier.notify(event)
        except NotifyError as exc:
            logger.warning("Webhook failed for user %s: %s", event.user_id, exc)

    def _notification_done(self, task: asyncio.Task[None]) -> None:
        self._pending_notifications.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Notification task crashed", exc_info=exc)

    async def drain(self) -> None:
        """Wait for in-flight notifications to finish."""
        while self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications), return_exceptions=True)
