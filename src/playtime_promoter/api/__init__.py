"""HTTP API for the promotion service."""
