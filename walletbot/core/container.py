from __future__ import annotations

from dataclasses import dataclass

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import LinkPreviewOptions
from sqlalchemy.ext.asyncio import AsyncEngine

from walletbot.adapters.chain import ChainReader
from walletbot.adapters.prices import PriceFeed
from walletbot.bot.commands import BotCommands
from walletbot.bot.router import CommandRouter
from walletbot.core.cache import RedisCache
from walletbot.core.config import Settings
from walletbot.core.errors import NotConfiguredError
from walletbot.core.http import ResilientHTTPClient
from walletbot.core.rate_limit import RateLimiter
from walletbot.db.session import create_engine_from_url, create_session_factory
from walletbot.services.alerts import AlertsService
from walletbot.services.linking import LinkService
from walletbot.services.quota import QuotaService
from walletbot.services.referrals import ReferralService
from walletbot.services.support import SupportService
from walletbot.services.users import UserService
from walletbot.services.watchlist import WatchlistService


@dataclass
class ServiceHub:
    settings: Settings
    bot: Bot
    http: ResilientHTTPClient
    cache: RedisCache
    price_feed: PriceFeed
    chain: ChainReader
    command_router: CommandRouter
    engine: AsyncEngine | None = None
    users: UserService | None = None
    link_service: LinkService | None = None
    alerts_service: AlertsService | None = None

    async def notify(self, chat_id: int, text: str) -> None:
        await self.bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode=ParseMode.HTML,
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )

    async def close(self) -> None:
        await self.http.close()
        await self.cache.close()
        if self.engine is not None:
            await self.engine.dispose()
        await self.bot.session.close()


def build_hub(settings: Settings) -> ServiceHub:
    if not settings.telegram_bot_token:
        raise NotConfiguredError("TELEGRAM_BOT_TOKEN is not set.")

    bot = Bot(token=settings.telegram_bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    http = ResilientHTTPClient(timeout=settings.http_timeout_sec)
    cache = RedisCache(settings.redis_url)
    price_feed = PriceFeed(http, cache, settings.dexscreener_base, settings.token_address)
    chain = ChainReader(
        http,
        settings.rpc_urls_list(),
        token_address=settings.token_address,
        staking_contract_address=settings.staking_contract_address,
        token_decimals=settings.token_decimals,
        reward_decimals=settings.reward_decimals,
    )
    rate_limiter = RateLimiter(cache, settings.request_rate_limit_per_minute)

    if not settings.store_configured:
        router = CommandRouter(None, {}, settings.bot_username)
        return ServiceHub(
            settings=settings,
            bot=bot,
            http=http,
            cache=cache,
            price_feed=price_feed,
            chain=chain,
            command_router=router,
        )

    engine = create_engine_from_url(settings.database_url, serverless=settings.serverless_mode)
    db_factory = create_session_factory(engine)
    hub = ServiceHub(
        settings=settings,
        bot=bot,
        http=http,
        cache=cache,
        price_feed=price_feed,
        chain=chain,
        command_router=CommandRouter(None, {}),
        engine=engine,
    )

    users = UserService(db_factory)
    quota = QuotaService(db_factory, settings.max_active_alerts, settings.max_watchlist)
    links = LinkService(
        users,
        settings.project_url,
        token_length=settings.link_token_length,
        ttl_minutes=settings.link_token_ttl_minutes,
        notifier=hub.notify,
    )
    alerts = AlertsService(db_factory, quota, price_feed)
    commands = BotCommands(
        users=users,
        links=links,
        alerts=alerts,
        watchlist=WatchlistService(db_factory, quota, chain),
        referrals=ReferralService(db_factory),
        support=SupportService(db_factory),
        price_feed=price_feed,
        chain=chain,
        project_name=settings.project_name,
        bot_username=settings.bot_username,
        token_address=settings.token_address,
        link_ttl_minutes=settings.link_token_ttl_minutes,
    )
    hub.users = users
    hub.link_service = links
    hub.alerts_service = alerts
    hub.command_router = CommandRouter(users, commands.table(), settings.bot_username, rate_limiter)
    return hub
