"""Playtime report schemas."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr

from playtime_promoter.services.engine import PromotionOutcome, ReportResult


class PlaytimeReportIn(BaseModel):
    """Body posted by the game server.

    Fields are strict so booleans and numeric strings are rejected rather
    than coerced. Missing values are left to the engine's own validation.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: StrictStr | StrictInt | None = Field(
        None, alias="userId", description="Roblox user id"
    )
    playtime: StrictInt | StrictFloat | None = Field(
        None, description="Total cumulative playtime in seconds"
    )


class OutcomeResponse(BaseModel):
    """Result of one tier attempt."""

    model_config = ConfigDict(populate_by_name=True)

    rank: int
    previous_rank: int = Field(..., alias="previousRank")
    status: str
    detail: str | None = None
    http_status: int | None = Field(None, alias="httpStatus")

    @classmethod
    def from_outcome(cls, outcome: PromotionOutcome) -> OutcomeResponse:
        return cls(
            rank=outcome.target_rank,
            previous_rank=outcome.previous_rank,
            status=outcome.status.value,
            detail=outcome.detail,
            http_status=outcome.http_status,
        )


class PlaytimeReportResponse(BaseModel):
    """Response for an accepted playtime report."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    user_id: str = Field(..., alias="userId")
    outcomes: list[OutcomeResponse] = Field(default_factory=list)
    message: str | None = None

    @classmethod
    def from_result(cls, result: ReportResult) -> PlaytimeReportResponse:
        return cls(
            user_id=result.user_id,
            outcomes=[OutcomeResponse.from_outcome(o) for o in result.outcomes],
            message=None if result.is_member else "User not in group",
        )
