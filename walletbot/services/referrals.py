from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from walletbot.db.models import Referral, TelegramUser, utcnow

logger = logging.getLogger(__name__)


class ReferralService:
    def __init__(self, db_factory) -> None:
        self.db_factory = db_factory

    async def bind(self, user: TelegramUser, code: str) -> bool:
        """Record ``user`` as referred by the owner of ``code``.

        Returns False for unknown codes, self-referrals, and participants who
        already have a referrer.
        """
        code = (code or "").strip().upper()
        if not code or user.referred_by is not None:
            return False

        async with self.db_factory() as session:
            q = await session.execute(select(TelegramUser.telegram_id).where(TelegramUser.referral_code == code))
            referrer_id = q.scalar_one_or_none()
            if referrer_id is None or referrer_id == user.telegram_id:
                return False

            result = await session.execute(
                update(TelegramUser)
                .where(TelegramUser.telegram_id == user.telegram_id, TelegramUser.referred_by.is_(None))
                .values(referred_by=referrer_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.rollback()
                return False
            session.add(
                Referral(
                    referrer_telegram_id=referrer_id,
                    referred_telegram_id=user.telegram_id,
                    referral_code=code,
                    status="completed",
                    completed_at=utcnow(),
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False

        logger.info("referral_bound", extra={"event": "referral_bound", "user_id": user.telegram_id})
        return True

    async def count_referred(self, referrer_id: int) -> int:
        async with self.db_factory() as session:
            q = await session.execute(
                select(func.count(Referral.id)).where(Referral.referrer_telegram_id == referrer_id)
            )
            return int(q.scalar_one() or 0)
