"""Playtime-driven rank promotions for a Roblox community group."""

__version__ = "0.1.0"
