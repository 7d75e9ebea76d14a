"""Assembly of the promotion engine and its collaborators from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from playtime_promoter.core.settings import Settings
from playtime_promoter.db.session import create_ledger_engine, create_session_factory
from playtime_promoter.services.engine import PromotionEngine
from playtime_promoter.services.ledger import (
    JsonFileLedgerStorage,
    LedgerStorage,
    PromotionLedger,
    SqlLedgerStorage,
)
from playtime_promoter.services.notifier import DiscordWebhookNotifier, Notifier, NullNotifier
from playtime_promoter.services.roblox import (
    GroupServiceClient,
    GroupServiceConfig,
    RankChangeClient,
)
from playtime_promoter.services.tiers import ThresholdTable
from playtime_promoter.services.token import TokenLifecycleManager

logger = logging.getLogger(__name__)


@dataclass
class PromotionRuntime:
    """The engine plus the resources that must be released on shutdown."""

    engine: PromotionEngine
    group_service: GroupServiceClient
    tokens: TokenLifecycleManager
    notifier: Notifier

    async def close(self) -> None:
        await self.engine.drain()
        await self.group_service.close()
        if isinstance(self.notifier, DiscordWebhookNotifier):
            await self.notifier.close()


def build_ledger_storage(cfg: Settings) -> LedgerStorage:
    if cfg.ledger_backend == "sql":
        engine = create_ledger_engine(cfg.database_url, echo=cfg.sql_debug)
        return SqlLedgerStorage(create_session_factory(engine))
    return JsonFileLedgerStorage(cfg.ledger_path)


def build_notifier(cfg: Settings) -> Notifier:
    if cfg.discord_webhook:
        return DiscordWebhookNotifier(
            cfg.discord_webhook, timeout_seconds=cfg.notify_timeout_seconds
        )
    return NullNotifier()


def build_runtime(cfg: Settings) -> PromotionRuntime:
    """Wire up the engine described by ``cfg``."""
    if not cfg.roblox_cookie:
        logger.warning("ROBLOX_COOKIE is not set; rank changes will fail")
    if not cfg.group_id:
        logger.warning("GROUP_ID is not set; every user will be treated as a non-member")

    group_service = GroupServiceClient(
        GroupServiceConfig(
            group_id=cfg.group_id,
            groups_base_url=cfg.roblox_groups_base_url,
            auth_url=cfg.roblox_auth_url,
            cookie=cfg.roblox_cookie.get_secret_value() if cfg.roblox_cookie else None,
            timeout_seconds=float(cfg.roblox_http_timeout_seconds),
        )
    )
    tokens = TokenLifecycleManager(group_service.acquire_token, ttl_seconds=cfg.token_ttl_seconds)
    notifier = build_notifier(cfg)
    engine = PromotionEngine(
        table=ThresholdTable.from_settings(cfg.promotion_tiers),
        ledger=PromotionLedger.load(build_ledger_storage(cfg)),
        rank_reader=group_service,
        rank_changer=RankChangeClient(group_service, tokens),
        notifier=notifier,
    )
    return PromotionRuntime(
        engine=engine,
        group_service=group_service,
        tokens=tokens,
        notifier=notifier,
    )
