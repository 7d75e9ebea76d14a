"""System and transparency endpoints for the promotion API."""

from __future__ import annotations

from fastapi import APIRouter

from playtime_promoter.api.v1.dependencies import EngineDep
from playtime_promoter.core.settings import settings

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config(engine: EngineDep) -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets (cookie, API key, webhook URL).

    Args:
        engine: Promotion engine whose tier table is reported

    Returns:
        Dictionary containing app metadata, promotion tiers, token policy,
        ledger backend and notifier status
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "group_id": settings.group_id,
        "tiers": [
            {
                "min_playtime_seconds": tier.min_playtime_seconds,
                "target_rank": tier.target_rank,
                "role_id": tier.role_id,
            }
            for tier in engine.table.tiers
        ],
        "token": {"ttl_seconds": settings.token_ttl_seconds},
        "ledger": {
            "backend": settings.ledger_backend,
            "records": len(engine.ledger),
            "load_warning": engine.ledger.load_warning,
        },
        "notifications": {"enabled": settings.notifications_enabled},
        "keepalive": {
            "enabled": settings.keepalive_enabled,
            "idle_seconds": settings.keepalive_idle_seconds,
        },
    }
