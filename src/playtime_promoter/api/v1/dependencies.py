"""Shared API dependencies for authentication and engine access."""

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from playtime_promoter.core.settings import settings
from playtime_promoter.services.engine import PromotionEngine
from playtime_promoter.services.keepalive import ActivityTracker

logger = logging.getLogger(__name__)


def require_api_key(
    x_api_key: Annotated[str | None, Header(alias="x-api-key")] = None,
) -> None:
    """Reject callers that do not present the shared API key.

    Raises:
        HTTPException: If no key is configured or the header does not match
    """
    expected = settings.api_key
    if not expected or x_api_key is None or not secrets.compare_digest(
        x_api_key.encode(), expected.encode()
    ):
        logger.info("Unauthorized request")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")


def get_promotion_engine(request: Request) -> PromotionEngine:
    """Return the engine built at startup."""
    engine: PromotionEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Promotion engine not ready",
        )
    return engine


def get_activity_tracker(request: Request) -> ActivityTracker:
    """Return the tracker shared with the keep-alive worker."""
    tracker: ActivityTracker | None = getattr(request.app.state, "activity", None)
    if tracker is None:
        tracker = ActivityTracker()
        request.app.state.activity = tracker
    return tracker


ApiKeyDep = Depends(require_api_key)
EngineDep = Annotated[PromotionEngine, Depends(get_promotion_engine)]
ActivityDep = Annotated[ActivityTracker, Depends(get_activity_tracker)]
