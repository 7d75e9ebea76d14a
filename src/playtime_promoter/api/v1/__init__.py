# src/playtime_promoter/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import playtime_router, system_router

__all__ = [
    "playtime_router",
    "system_router",
]
