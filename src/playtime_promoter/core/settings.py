"""Application settings and configuration.

This module defines all configuration options for the promotion service.
Settings are loaded from environment variables with sensible defaults.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class TierSetting(BaseModel):
    """One configured promotion step, as read from ``PROMOTION_TIERS``."""

    min_playtime_seconds: int = Field(..., ge=0)
    target_rank: int = Field(..., ge=0, le=255)
    role_id: int | None = None


DEFAULT_TIERS: list[TierSetting] = [
    TierSetting(min_playtime_seconds=3600, target_rank=2),    # 1 hour
    TierSetting(min_playtime_seconds=7200, target_rank=3),    # 2 hours
    TierSetting(min_playtime_seconds=12600, target_rank=4),   # 3.5 hours
    TierSetting(min_playtime_seconds=21600, target_rank=5),   # 6 hours
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or a ``.env`` file.
    """

    # Application metadata
    app_name: str = Field(default="Playtime Promoter", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    port: int = Field(default=3000, alias="PORT")

    # Inbound report authentication
    api_key: str | None = Field(default=None, alias="API_KEY")

    # Roblox group service
    roblox_cookie: SecretStr | None = Field(default=None, alias="ROBLOX_COOKIE")
    group_id: int = Field(default=0, alias="GROUP_ID")
    roblox_groups_base_url: str = Field(
        default="https://groups.roblox.com",
        alias="ROBLOX_GROUPS_BASE_URL",
    )
    roblox_auth_url: str = Field(
        default="https://auth.roblox.com/v2/logout",
        alias="ROBLOX_AUTH_URL",
    )
    roblox_http_timeout_seconds: float = Field(default=10.0, alias="ROBLOX_HTTP_TIMEOUT_SECONDS")
    token_ttl_seconds: int = Field(default=300, alias="TOKEN_TTL_SECONDS")

    # Promotion policy
    promotion_tiers: list[TierSetting] = Field(
        default_factory=lambda: list(DEFAULT_TIERS),
        alias="PROMOTION_TIERS",
    )

    # Discord notifications
    discord_webhook: str | None = Field(default=None, alias="DISCORD_WEBHOOK")
    notify_timeout_seconds: float = Field(default=5.0, alias="NOTIFY_TIMEOUT_SECONDS")

    # Promotion ledger storage
    ledger_backend: Literal["json", "sql"] = Field(default="json", alias="LEDGER_BACKEND")
    ledger_path: str = Field(default="promotion-log.json", alias="LEDGER_PATH")
    database_url: str = Field(default="sqlite:///./promotions.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Self keep-alive for hosts that idle out quiet services
    keepalive_enabled: bool = Field(default=True, alias="KEEPALIVE_ENABLED")
    keepalive_url: str | None = Field(default=None, alias="KEEPALIVE_URL")
    keepalive_idle_seconds: float = Field(default=300.0, alias="KEEPALIVE_IDLE_SECONDS")
    keepalive_interval_seconds: float = Field(default=60.0, alias="KEEPALIVE_INTERVAL_SECONDS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_keepalive_url(self) -> str:
        """Return the URL pinged by the keep-alive worker.

        Returns:
            The configured URL, or this service's own health endpoint
        """
        if self.keepalive_url:
            return self.keepalive_url
        return f"http://localhost:{self.port}/health"

    @property
    def notifications_enabled(self) -> bool:
        """Return True when a Discord webhook is configured."""
        return bool(self.discord_webhook)


settings = Settings()
