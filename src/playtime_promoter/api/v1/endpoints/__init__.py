# src/playtime_promoter/api/v1/endpoints/__init__.py
"""API endpoint routers."""

from .playtime import router as playtime_router
from .system import router as system_router

__all__ = ["playtime_router", "system_router"]
