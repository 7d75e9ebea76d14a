"""Playtime threshold table."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from playtime_promoter.core.settings import TierSetting


@dataclass(frozen=True)
class ThresholdTier:
    """A (playtime threshold, target rank) promotion step."""

    min_playtime_seconds: int
    target_rank: int
    role_id: int | None = None


class ThresholdTable:
    """Immutable, ascending list of promotion tiers."""

    def __init__(self, tiers: Iterable[ThresholdTier]) -> None:
        ordered = tuple(sorted(tiers, key=lambda t: t.min_playtime_seconds))
        for tier in ordered:
            if tier.min_playtime_seconds < 0:
                raise ValueError("Tier thresholds must be non-negative")
        for lower, upper in zip(ordered, ordered[1:]):
            if upper.target_rank <= lower.target_rank:
                raise ValueError(
                    f"Tier ranks must increase with playtime "
                    f"(rank {upper.target_rank} follows rank {lower.target_rank})"
                )
        self._tiers = ordered

    @classmethod
    def from_settings(cls, tiers: Iterable[TierSetting]) -> ThresholdTable:
        return cls(
            ThresholdTier(
                min_playtime_seconds=t.min_playtime_seconds,
                target_rank=t.target_rank,
                role_id=t.role_id,
            )
            for t in tiers
        )

    @property
    def tiers(self) -> tuple[ThresholdTier, ...]:
        return self._tiers

    def tiers_at_or_below(self, playtime_seconds: int) -> list[ThresholdTier]:
        """Return every tier reached by ``playtime_seconds``, lowest first."""
        return [t for t in self._tiers if t.min_playtime_seconds <= playtime_seconds]

    def __len__(self) -> int:
        return len(self._tiers)
