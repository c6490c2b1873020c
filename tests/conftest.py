from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio

from walletbot.adapters.chain import TokenBalance
from walletbot.adapters.prices import PriceQuote
from walletbot.bot.commands import BotCommands
from walletbot.bot.router import CommandRouter
from walletbot.core.errors import CollaboratorUnavailable
from walletbot.db.models import Base
from walletbot.db.session import create_engine_from_url, create_session_factory
from walletbot.services.alerts import AlertsService
from walletbot.services.linking import LinkService
from walletbot.services.quota import QuotaService
from walletbot.services.referrals import ReferralService
from walletbot.services.support import SupportService
from walletbot.services.users import UserService
from walletbot.services.watchlist import WatchlistService


class FakePriceFeed:
    def __init__(self, price: str | None = "1.0") -> None:
        self.price = price
        self.calls: list[bool] = []

    async def get_quote(self, fresh: bool = False) -> PriceQuote:
        self.calls.append(fresh)
        if self.price is None:
            raise CollaboratorUnavailable("price feed down")
        return PriceQuote(price=Decimal(self.price), change_24h=1.5, volume_24h=1000.0, market_cap=50000.0)


class FakeChain:
    staking_enabled = False

    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self.balances = balances or {}

    async def token_balance(self, address: str) -> TokenBalance:
        if address not in self.balances:
            raise CollaboratorUnavailable("rpc down")
        raw = self.balances[address]
        return TokenBalance(raw=raw, amount=Decimal(raw).scaleb(-18))

    async def gas_price_gwei(self) -> Decimal:
        return Decimal("1.5")


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[int, str]] = []

    async def __call__(self, chat_id: int, text: str) -> None:
        if self.fail:
            raise RuntimeError("telegram down")
        self.sent.append((chat_id, text))


@pytest_asyncio.fixture
async def db_factory(tmp_path):
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'bot.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def price_feed() -> FakePriceFeed:
    return FakePriceFeed()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def users(db_factory) -> UserService:
    return UserService(db_factory)


@pytest.fixture
def quota(db_factory) -> QuotaService:
    return QuotaService(db_factory, max_active_alerts=5, max_watchlist=10)


@pytest.fixture
def alerts(db_factory, quota, price_feed) -> AlertsService:
    return AlertsService(db_factory, quota, price_feed)


@pytest.fixture
def watchlist(db_factory, quota, chain) -> WatchlistService:
    return WatchlistService(db_factory, quota, chain)


@pytest.fixture
def links(users, notifier) -> LinkService:
    return LinkService(users, "https://example.org/", notifier=notifier)


@pytest.fixture
def command_router(db_factory, users, links, alerts, watchlist, price_feed, chain) -> CommandRouter:
    commands = BotCommands(
        users=users,
        links=links,
        alerts=alerts,
        watchlist=watchlist,
        referrals=ReferralService(db_factory),
        support=SupportService(db_factory),
        price_feed=price_feed,
        chain=chain,
        project_name="Acme",
        bot_username="acme_bot",
        token_address="0x" + "ab" * 20,
        link_ttl_minutes=15,
    )
    return CommandRouter(users, commands.table(), "acme_bot")


