"""Core configuration for the promotion service."""
