"""Durable record of completed promotions.

The ledger is the idempotency source of truth: a (user, rank) pair recorded
here is never attempted again. Records are loaded wholesale at startup and
every confirmed promotion is persisted before the engine reports it.

Two storage backends are provided:

- ``JsonFileLedgerStorage`` keeps the whole ledger in one JSON array and
  rewrites it atomically on every append.
- ``SqlLedgerStorage`` appends rows to a SQLAlchemy-managed table.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from playtime_promoter.db.time import parse_utc, utcnow
from playtime_promoter.models import PromotionRecordRow
from playtime_promoter.services.errors import PersistenceError, PromotionError

logger = logging.getLogger(__name__)


class LedgerLoadError(PromotionError):
    """Base exception for ledger storage that cannot be read."""


class LedgerNotFoundError(LedgerLoadError):
    """Raised when no ledger has been written yet."""


class LedgerCorruptError(LedgerLoadError):
    """Raised when stored ledger content cannot be parsed."""


@dataclass(frozen=True)
class PromotionRecord:
    """A completed, confirmed promotion."""

    user_id: str
    applied_rank: int
    applied_at: datetime

    @property
    def key(self) -> tuple[str, int]:
        return (self.user_id, self.applied_rank)

    def to_json(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "rank": self.applied_rank,
            "timestamp": self.applied_at.isoformat(),
        }

    @classmethod
    def from_json(cls, entry: Any) -> PromotionRecord:
        if not isinstance(entry, dict):
            raise ValueError("ledger entry is not an object")
        rank = entry["rank"]
        if isinstance(rank, bool) or not isinstance(rank, int):
            raise ValueError("ledger entry rank is not an integer")
        return cls(
            user_id=str(entry["userId"]),
            applied_rank=rank,
            applied_at=parse_utc(str(entry["timestamp"])),
        )


class LedgerStorage(Protocol):
    """Durable storage boundary for the promotion ledger."""

    def read_all(self) -> list[PromotionRecord]:
        """Return every stored record.

        Raises:
            LedgerNotFoundError: Nothing has been stored yet
            LedgerCorruptError: Stored content is unreadable
        """

    def append_or_rewrite(
        self, record: PromotionRecord, records: Sequence[PromotionRecord]
    ) -> None:
        """Durably store ``record``; ``records`` is the full ledger including it.

        Raises:
            PersistenceError: The durable write failed
        """

    def quarantine(self) -> str | None:
        """Move unreadable content out of the way of the next write.

        Returns where the content now lives, or None when nothing was moved.

        Raises:
            PersistenceError: The content could not be moved
        """


class JsonFileLedgerStorage:
    """Ledger kept as a single JSON array on disk."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def read_all(self) -> list[PromotionRecord]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise LedgerNotFoundError(f"No ledger at {self.path}") from exc
        except OSError as exc:
            raise LedgerCorruptError(f"Cannot read ledger at {self.path}: {exc}") from exc

        try:
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ValueError("ledger root is not a list")
            return [PromotionRecord.from_json(entry) for entry in entries]
        except (ValueError, KeyError, TypeError) as exc:
            raise LedgerCorruptError(f"Malformed ledger at {self.path}: {exc}") from exc

    def append_or_rewrite(
        self, record: PromotionRecord, records: Sequence[PromotionRecord]
    ) -> None:
        payload = json.dumps([r.to_json() for r in records], indent=2)
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Failed to write ledger {self.path}: {exc}") from exc

    def quarantine(self) -> str | None:
        if not self.path.exists():
            return None
        stamp = utcnow().strftime("%Y%m%dT%H%M%S%fZ")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            os.replace(self.path, target)
        except OSError as exc:
            raise PersistenceError(f"Failed to move aside ledger {self.path}: {exc}") from exc
        return str(target)


class SqlLedgerStorage:
    """Ledger kept as append-only rows in a SQL database."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def read_all(self) -> list[PromotionRecord]:
        try:
            with self._session_factory() as db:
                rows = db.scalars(select(PromotionRecordRow).order_by(PromotionRecordRow.id)).all()
                return [self._to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            raise LedgerCorruptError(f"Cannot read ledger table: {exc}") from exc

    def append_or_rewrite(
        self, record: PromotionRecord, records: Sequence[PromotionRecord]
    ) -> None:
        try:
            with self._session_factory() as db:
                db.add(
                    PromotionRecordRow(
                        user_id=record.user_id,
                        applied_rank=record.applied_rank,
                        applied_at=record.applied_at,
                    )
                )
                db.commit()
        except IntegrityError:
            # Another process already recorded this pair; the row we wanted exists.
            logger.info(
                "Ledger row for user %s rank %d already present",
                record.user_id,
                record.applied_rank,
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to insert ledger row: {exc}") from exc

    def quarantine(self) -> str | None:
        # Rows are only ever inserted, so an unreadable table is never overwritten.
        return None

    @staticmethod
    def _to_record(row: PromotionRecordRow) -> PromotionRecord:
        applied_at = row.applied_at
        if applied_at.tzinfo is None:
            applied_at = applied_at.replace(tzinfo=UTC)
        return PromotionRecord(
            user_id=row.user_id,
            applied_rank=row.applied_rank,
            applied_at=applied_at,
        )


class PromotionLedger:
    """In-memory view of completed promotions backed by durable storage."""

    def __init__(
        self, storage: LedgerStorage, records: Iterable[PromotionRecord] = ()
    ) -> None:
        self._storage = storage
        # _lock guards the in-memory state and is never held across storage I/O;
        # _write_lock serializes durable writes.
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._records: list[PromotionRecord] = []
        self._keys: set[tuple[str, int]] = set()
        for record in records:
            if record.key not in self._keys:
                self._records.append(record)
                self._keys.add(record.key)
        self.load_warning: str | None = None

    @classmethod
    def load(cls, storage: LedgerStorage) -> PromotionLedger:
        """Read the ledger from storage, falling back to an empty ledger.

        A missing or unreadable store is never fatal; the reason is kept in
        ``load_warning`` and logged. Unreadable content is moved aside first
        so the next write does not destroy it.
        """
        try:
            records = storage.read_all()
        except LedgerNotFoundError as exc:
            ledger = cls(storage)
            ledger.load_warning = str(exc)
            logger.warning("Starting with an empty promotion ledger: %s", exc)
            return ledger
        except LedgerCorruptError as exc:
            ledger = cls(storage)
            ledger.load_warning = str(exc)
            logger.warning("Promotion ledger unreadable, starting empty: %s", exc)
            try:
                moved_to = storage.quarantine()
            except PersistenceError as move_exc:
                logger.error("Unreadable promotion ledger left in place: %s", move_exc)
                ledger.load_warning = f"{exc}; {move_exc}"
            else:
                if moved_to:
                    logger.warning("Unreadable promotion ledger moved to %s", moved_to)
                    ledger.load_warning = f"{exc}; moved to {moved_to}"
            return ledger

        ledger = cls(storage, records)
        logger.info("Loaded %d promotion records", len(ledger))
        return ledger

    def is_applied(self, user_id: str, target_rank: int) -> bool:
        with self._lock:
            return (user_id, target_rank) in self._keys

    def record_applied(
        self, user_id: str, target_rank: int, applied_at: datetime | None = None
    ) -> PromotionRecord:
        """Append a promotion and persist it before returning.

        On a failed write the record is not kept in memory, so the pair is
        not treated as applied.

        Raises:
            PersistenceError: The durable write failed
        """
        key = (user_id, target_rank)
        with self._write_lock:
            with self._lock:
                if key in self._keys:
                    return next(r for r in self._records if r.key == key)
                record = PromotionRecord(
                    user_id=user_id,
                    applied_rank=target_rank,
                    applied_at=applied_at or utcnow(),
                )
                updated = [*self._records, record]

            self._storage.append_or_rewrite(record, updated)

            with self._lock:
                self._records = updated
                self._keys.add(key)
            return record

    @property
    def records(self) -> tuple[PromotionRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
