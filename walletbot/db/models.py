from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC, the representation every timestamp column uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class TelegramUser(Base):
    __tablename__ = "telegram_users"

    telegram_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    wallet_address: Mapped[str | None] = mapped_column(String(42), nullable=True, index=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    link_code: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    link_code_expires: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    linked_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    referral_code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    referred_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("telegram_users.telegram_id", ondelete="SET NULL"), nullable=True
    )
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)


class PriceAlert(Base):
    __tablename__ = "telegram_price_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    telegram_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("telegram_users.telegram_id", ondelete="CASCADE"), nullable=False, index=True
    )
    alert_type: Mapped[str] = mapped_column(String(8), nullable=False)
    target_price: Mapped[Decimal] = mapped_column(Numeric(20, 10, asdecimal=True), nullable=False)
    triggered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    triggered_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)


class WatchlistEntry(Base):
    __tablename__ = "telegram_watchlist"
    __table_args__ = (UniqueConstraint("telegram_id", "wallet_address", name="uq_watchlist_owner_wallet"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    telegram_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("telegram_users.telegram_id", ondelete="CASCADE"), nullable=False, index=True
    )
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    nickname: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)


class Referral(Base):
    __tablename__ = "telegram_referrals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    referrer_telegram_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("telegram_users.telegram_id", ondelete="CASCADE"), nullable=False, index=True
    )
    referred_telegram_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("telegram_users.telegram_id", ondelete="CASCADE"), nullable=False, unique=True
    )
    referral_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)


class SupportTicket(Base):
    __tablename__ = "telegram_support_tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    telegram_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("telegram_users.telegram_id", ondelete="CASCADE"), nullable=False, index=True
    )
    subject: Mapped[str] = mapped_column(String(120), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)
