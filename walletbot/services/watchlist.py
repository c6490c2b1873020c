from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from walletbot.adapters.chain import ChainReader
from walletbot.core.errors import BotError, InvalidInputError, NotFoundError
from walletbot.core.signatures import is_address
from walletbot.db.models import WatchlistEntry
from walletbot.services.quota import QuotaService, ResourceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchedWallet:
    wallet_address: str
    nickname: str | None
    balance: Decimal | None


class WatchlistService:
    def __init__(self, db_factory, quota: QuotaService, chain: ChainReader) -> None:
        self.db_factory = db_factory
        self.quota = quota
        self.chain = chain

    async def _find(self, session, telegram_id: int, address: str) -> WatchlistEntry | None:
        q = await session.execute(
            select(WatchlistEntry).where(
                WatchlistEntry.telegram_id == telegram_id, WatchlistEntry.wallet_address == address
            )
        )
        return q.scalar_one_or_none()

    async def watch(self, telegram_id: int, address: str, nickname: str | None = None) -> WatchlistEntry:
        """Add a wallet, or rename it when it is already on the list."""
        if not is_address(address):
            raise InvalidInputError("Usage: /watch [address] [name]")
        address = address.lower()
        nickname = (nickname or "").strip()[:64] or None

        async with self.db_factory() as session:
            existing = await self._find(session, telegram_id, address)
            if existing:
                existing.nickname = nickname
                await session.commit()
                return existing

        await self.quota.check(telegram_id, ResourceKind.WATCHLIST)
        async with self.db_factory() as session:
            entry = WatchlistEntry(telegram_id=telegram_id, wallet_address=address, nickname=nickname)
            session.add(entry)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                entry = await self._find(session, telegram_id, address)
                if entry is None:
                    raise
                entry.nickname = nickname
                await session.commit()
            return entry

    async def list_entries(self, telegram_id: int) -> list[WatchlistEntry]:
        async with self.db_factory() as session:
            q = await session.execute(
                select(WatchlistEntry)
                .where(WatchlistEntry.telegram_id == telegram_id)
                .order_by(WatchlistEntry.created_at, WatchlistEntry.id)
            )
            return list(q.scalars().all())

    async def _balance_or_none(self, address: str) -> Decimal | None:
        try:
            return (await self.chain.token_balance(address)).amount
        except BotError as exc:
            logger.warning("watchlist_balance_failed", extra={"event": "watchlist_balance_failed", "error": str(exc)})
            return None

    async def list_with_balances(self, telegram_id: int) -> list[WatchedWallet]:
        entries = await self.list_entries(telegram_id)
        balances = await asyncio.gather(*(self._balance_or_none(e.wallet_address) for e in entries))
        return [
            WatchedWallet(wallet_address=e.wallet_address, nickname=e.nickname, balance=b)
            for e, b in zip(entries, balances)
        ]

    async def unwatch(self, telegram_id: int, address: str) -> None:
        if not (address or "").startswith("0x"):
            raise InvalidInputError("Usage: /unwatch [address]")
        async with self.db_factory() as session:
            result = await session.execute(
                delete(WatchlistEntry)
                .where(
                    WatchlistEntry.telegram_id == telegram_id,
                    WatchlistEntry.wallet_address == address.lower(),
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        if result.rowcount == 0:
            raise NotFoundError("Wallet not on your watchlist.")
