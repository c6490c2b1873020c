from __future__ import annotations

from enum import Enum

from sqlalchemy import func, select

from walletbot.core.errors import QuotaExceededError
from walletbot.db.models import PriceAlert, WatchlistEntry


class ResourceKind(str, Enum):
    ALERT = "alert"
    WATCHLIST = "watchlist"


class QuotaService:
    """Per-participant resource ceilings.

    The count and the caller's insert are separate statements, so two racing
    requests from one participant can both pass. That overshoot is accepted.
    """

    def __init__(self, db_factory, max_active_alerts: int = 5, max_watchlist: int = 10) -> None:
        self.db_factory = db_factory
        self.ceilings = {
            ResourceKind.ALERT: max_active_alerts,
            ResourceKind.WATCHLIST: max_watchlist,
        }

    async def count(self, telegram_id: int, kind: ResourceKind) -> int:
        if kind is ResourceKind.ALERT:
            stmt = select(func.count(PriceAlert.id)).where(
                PriceAlert.telegram_id == telegram_id, PriceAlert.triggered.is_(False)
            )
        else:
            stmt = select(func.count(WatchlistEntry.id)).where(WatchlistEntry.telegram_id == telegram_id)
        async with self.db_factory() as session:
            q = await session.execute(stmt)
            return int(q.scalar_one() or 0)

    async def allows(self, telegram_id: int, kind: ResourceKind) -> bool:
        return await self.count(telegram_id, kind) < self.ceilings[kind]

    async def check(self, telegram_id: int, kind: ResourceKind) -> None:
        if await self.allows(telegram_id, kind):
            return
        ceiling = self.ceilings[kind]
        if kind is ResourceKind.ALERT:
            raise QuotaExceededError(f"Max {ceiling} alerts. Delete some first.")
        raise QuotaExceededError(f"Max {ceiling} wallets.")
