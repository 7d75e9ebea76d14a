# src/playtime_promoter/schemas/__init__.py
"""
Pydantic schemas for API request/response models.
"""

from .playtime import OutcomeResponse, PlaytimeReportIn, PlaytimeReportResponse

__all__ = ["OutcomeResponse", "PlaytimeReportIn", "PlaytimeReportResponse"]
