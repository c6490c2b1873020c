from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Awaitable, Callable

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from walletbot.adapters.prices import PriceFeed
from walletbot.core.errors import CollaboratorUnavailable, InvalidInputError, NotConfiguredError, NotFoundError
from walletbot.core.fmt import fmt_decimal
from walletbot.db.models import PriceAlert, TelegramUser, utcnow
from walletbot.services.quota import QuotaService, ResourceKind

logger = logging.getLogger(__name__)

ALERT_TYPES = ("above", "below")
_PRICE_STEP = Decimal("1e-10")
_PRICE_CEILING = Decimal("1e10")

Notifier = Callable[[int, str], Awaitable[None]]


def parse_target_price(raw: str) -> Decimal:
    try:
        value = Decimal((raw or "").strip())
    except InvalidOperation:
        raise InvalidInputError("Price must be a number.") from None
    if not value.is_finite() or value <= 0 or value >= _PRICE_CEILING:
        raise InvalidInputError("Price must be a positive number.")
    value = value.quantize(_PRICE_STEP)
    if value <= 0:
        raise InvalidInputError("Price is below the supported precision.")
    return value


def should_trigger(alert_type: str, target: Decimal, price: Decimal) -> bool:
    """Both bounds are inclusive: a price sitting exactly on the target fires."""
    if alert_type == "above":
        return price >= target
    if alert_type == "below":
        return price <= target
    return False


def alert_message(alert_type: str, target: Decimal, price: Decimal) -> str:
    emoji = "📈" if alert_type == "above" else "📉"
    return (
        f"{emoji} <b>Price Alert!</b>\n\n"
        f"Price is now {alert_type} ${fmt_decimal(target)}\n"
        f"Current: ${fmt_decimal(price)}"
    )


@dataclass
class SweepResult:
    status: str
    price: Decimal | None = None
    considered: int = 0
    triggered: int = 0
    notified: int = 0
    suppressed: int = 0
    delivery_failed: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def as_dict(self) -> dict:
        out = asdict(self)
        out["price"] = fmt_decimal(self.price) if self.price is not None else None
        return out


class AlertsService:
    def __init__(
        self,
        db_factory,
        quota: QuotaService,
        price_feed: PriceFeed,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db_factory = db_factory
        self.quota = quota
        self.price_feed = price_feed
        self.clock = clock

    async def create_alert(self, telegram_id: int, alert_type: str, target_price: Decimal) -> PriceAlert:
        alert_type = alert_type.lower()
        if alert_type not in ALERT_TYPES:
            raise InvalidInputError("Invalid. Use: /alert above [price]")

        await self.quota.check(telegram_id, ResourceKind.ALERT)
        async with self.db_factory() as session:
            alert = PriceAlert(telegram_id=telegram_id, alert_type=alert_type, target_price=target_price)
            session.add(alert)
            await session.commit()
            await session.refresh(alert)
            return alert

    async def list_alerts(self, telegram_id: int) -> list[PriceAlert]:
        async with self.db_factory() as session:
            q = await session.execute(
                select(PriceAlert)
                .where(PriceAlert.telegram_id == telegram_id, PriceAlert.triggered.is_(False))
                .order_by(PriceAlert.created_at, PriceAlert.id)
            )
            return list(q.scalars().all())

    async def delete_alert(self, telegram_id: int, position: int) -> PriceAlert:
        """Delete the ``position``-th (1-based) untriggered alert as shown by ``list_alerts``."""
        alerts = await self.list_alerts(telegram_id)
        if position < 1 or position > len(alerts):
            raise NotFoundError("Alert not found.")
        target = alerts[position - 1]
        async with self.db_factory() as session:
            result = await session.execute(
                delete(PriceAlert)
                .where(
                    PriceAlert.id == target.id,
                    PriceAlert.telegram_id == telegram_id,
                    PriceAlert.triggered.is_(False),
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        if result.rowcount != 1:
            # Fired or deleted since it was listed.
            raise NotFoundError("Alert not found.")
        return target

    async def mark_triggered(self, alert_id: int, now: datetime) -> bool:
        """Consume an alert. Only the caller that flips the flag gets True."""
        async with self.db_factory() as session:
            result = await session.execute(
                update(PriceAlert)
                .where(PriceAlert.id == alert_id, PriceAlert.triggered.is_(False))
                .values(triggered=True, triggered_at=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    async def _pending_alerts(self) -> list[tuple[PriceAlert, bool]]:
        async with self.db_factory() as session:
            q = await session.execute(
                select(PriceAlert, TelegramUser.notifications_enabled)
                .join(TelegramUser, TelegramUser.telegram_id == PriceAlert.telegram_id)
                .where(PriceAlert.triggered.is_(False))
                .order_by(PriceAlert.id)
            )
            return [(alert, bool(enabled)) for alert, enabled in q.all()]

    async def process_alerts(self, notifier: Notifier) -> SweepResult:
        """One sweep over every untriggered alert against a single price snapshot."""
        try:
            quote = await self.price_feed.get_quote(fresh=True)
        except NotConfiguredError:
            return SweepResult(status="not_configured")
        except CollaboratorUnavailable as exc:
            logger.warning("sweep_price_unavailable", extra={"event": "sweep_price_unavailable", "error": str(exc)})
            return SweepResult(status="price_unavailable")

        price = quote.price
        result = SweepResult(status="ok", price=price)
        try:
            pending = await self._pending_alerts()
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("sweep_store_unavailable", extra={"event": "sweep_store_unavailable", "error": str(exc)})
            return SweepResult(status="store_unavailable", price=price)

        result.considered = len(pending)
        now = self.clock()
        for alert, notifications_enabled in pending:
            if not should_trigger(alert.alert_type, alert.target_price, price):
                continue

            try:
                consumed = await self.mark_triggered(alert.id, now)
            except (SQLAlchemyError, OSError) as exc:
                logger.warning(
                    "alert_mark_failed",
                    extra={"event": "alert_mark_failed", "alert_id": alert.id, "error": str(exc)},
                )
                continue
            if not consumed:
                # Another sweep got there first.
                continue
            result.triggered += 1

            if not notifications_enabled:
                result.suppressed += 1
                continue
            try:
                await notifier(alert.telegram_id, alert_message(alert.alert_type, alert.target_price, price))
                result.notified += 1
            except Exception as exc:  # noqa: BLE001
                result.delivery_failed += 1
                logger.warning(
                    "alert_delivery_failed",
                    extra={
                        "event": "alert_delivery_failed",
                        "alert_id": alert.id,
                        "user_id": alert.telegram_id,
                        "error": str(exc),
                    },
                )
        return result
