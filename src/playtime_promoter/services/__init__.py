# src/playtime_promoter/services/__init__.py
"""Business logic services for the promotion service."""

from .engine import PlaytimeReport, PromotionEngine, PromotionOutcome, ReportResult
from .ledger import PromotionLedger, PromotionRecord
from .notifier import DiscordWebhookNotifier, NullNotifier
from .roblox import GroupServiceClient, RankChangeClient
from .tiers import ThresholdTable, ThresholdTier
from .token import TokenLifecycleManager

__all__ = [
    "PlaytimeReport", "PromotionEngine", "PromotionOutcome", "ReportResult",
    "PromotionLedger", "PromotionRecord",
    "DiscordWebhookNotifier", "NullNotifier",
    "GroupServiceClient", "RankChangeClient",
    "ThresholdTable", "ThresholdTier",
    "TokenLifecycleManager",
]
