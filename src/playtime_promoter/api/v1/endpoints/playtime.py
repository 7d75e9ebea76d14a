"""Playtime report endpoint for the promotion API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from playtime_promoter.api.v1.dependencies import ActivityDep, ApiKeyDep, EngineDep
from playtime_promoter.schemas.playtime import PlaytimeReportIn, PlaytimeReportResponse
from playtime_promoter.services.engine import PlaytimeReport
from playtime_promoter.services.errors import AuthError, RankLookupError, ReportValidationError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["playtime"])


@router.post(
    "/log-playtime",
    response_model=PlaytimeReportResponse,
    dependencies=[ApiKeyDep],
)
async def log_playtime(
    body: PlaytimeReportIn,
    engine: EngineDep,
    activity: ActivityDep,
) -> PlaytimeReportResponse:
    """Evaluate a user's cumulative playtime and apply any earned promotions.

    Per-tier failures are reported in ``outcomes`` with a 200 response so the
    caller can decide whether to resubmit.

    Raises:
        HTTPException: 400 for a malformed report, 502 when the group service
            cannot be read or authenticated against
    """
    activity.touch()
    report = PlaytimeReport(user_id=body.user_id, playtime_seconds=body.playtime)

    try:
        result = await engine.process_report(report)
    except ReportValidationError as exc:
        logger.info("Invalid request: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except AuthError as exc:
        logger.error("Group service authentication failed: %s (%s)", exc, exc.cause)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Group service authentication failed",
        ) from exc
    except RankLookupError as exc:
        logger.error("Rank check failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not read the user's group rank",
        ) from exc

    return PlaytimeReportResponse.from_result(result)
