# src/playtime_promoter/models/__init__.py
"""SQLAlchemy models for the promotion service."""

from .promotion import PromotionRecordRow

__all__ = ["PromotionRecordRow"]
