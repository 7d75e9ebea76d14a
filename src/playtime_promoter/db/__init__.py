# src/playtime_promoter/db/__init__.py
"""Database configuration and utilities."""

from .session import Base, create_session_factory

__all__ = ["Base", "create_session_factory"]
