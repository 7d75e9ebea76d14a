"""Exception hierarchy for the promotion service.

Errors fall into two groups. ``EngineError`` subclasses abort the whole
playtime report. ``RankChangeError`` and ``PersistenceError`` are per-tier and
are collected into the report's outcomes instead of being raised to the host.
``NotifyError`` is logged by the notifier and never propagates.
"""

from __future__ import annotations


class PromotionError(RuntimeError):
    """Base exception for promotion-related failures."""


class EngineError(PromotionError):
    """Raised when a playtime report cannot be processed at all."""


class ReportValidationError(EngineError):
    """Raised when a playtime report is malformed."""


class AuthError(EngineError):
    """Raised when the short-lived group-service token cannot be acquired."""

    def __init__(self, message: str, *, cause: str | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class RankLookupError(EngineError):
    """Raised when a user's current group rank cannot be read."""


class RankChangeError(PromotionError):
    """Raised when the group service refuses or fails a rank mutation."""

    def __init__(self, message: str, *, status: int | None = None, cause: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.cause = cause


class PersistenceError(PromotionError):
    """Raised when the promotion ledger cannot be written durably."""


class NotifyError(PromotionError):
    """Raised by notifiers when an announcement cannot be delivered."""
