from __future__ import annotations

import logging
import secrets

from sqlalchemy import not_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from walletbot.core.errors import CollaboratorUnavailable
from walletbot.db.models import TelegramUser

logger = logging.getLogger(__name__)

_CREATE_ATTEMPTS = 3


def new_referral_code(length: int = 8) -> str:
    return secrets.token_hex(length).upper()[:length]


class UserService:
    """Identity store: one ``TelegramUser`` row per chat participant."""

    def __init__(self, db_factory, referral_code_length: int = 8) -> None:
        self.db_factory = db_factory
        self.referral_code_length = referral_code_length

    async def get(self, telegram_id: int) -> TelegramUser | None:
        async with self.db_factory() as session:
            q = await session.execute(select(TelegramUser).where(TelegramUser.telegram_id == telegram_id))
            return q.scalar_one_or_none()

    async def get_by_link_code(self, code: str) -> TelegramUser | None:
        async with self.db_factory() as session:
            q = await session.execute(select(TelegramUser).where(TelegramUser.link_code == code))
            return q.scalar_one_or_none()

    async def ensure_user(self, telegram_id: int, username: str | None = None) -> TelegramUser:
        """Get-or-create by participant id, refreshing the display handle when it changed.

        Store failures surface as ``CollaboratorUnavailable``.
        """
        try:
            return await self._ensure_user(telegram_id, username)
        except (SQLAlchemyError, OSError) as exc:
            logger.warning(
                "user_store_unavailable",
                extra={"event": "user_store_unavailable", "user_id": telegram_id, "error": str(exc)},
            )
            raise CollaboratorUnavailable("Service unavailable.") from exc

    async def _ensure_user(self, telegram_id: int, username: str | None) -> TelegramUser:
        for _ in range(_CREATE_ATTEMPTS):
            async with self.db_factory() as session:
                q = await session.execute(select(TelegramUser).where(TelegramUser.telegram_id == telegram_id))
                user = q.scalar_one_or_none()
                if user:
                    if username and user.username != username:
                        user.username = username
                        await session.commit()
                    return user

                user = TelegramUser(
                    telegram_id=telegram_id,
                    username=username or None,
                    referral_code=new_referral_code(self.referral_code_length),
                    notifications_enabled=True,
                )
                session.add(user)
                try:
                    await session.commit()
                except IntegrityError:
                    # Either a concurrent first message created the row or the
                    # referral code collided; the next pass tells them apart.
                    await session.rollback()
                    continue
                logger.info("user_created", extra={"event": "user_created", "user_id": telegram_id})
                return user
        raise CollaboratorUnavailable("Could not create user record.")

    async def update_where(self, telegram_id: int, values: dict, *criteria) -> bool:
        """Single-row conditional update. Returns True when the row matched."""
        async with self.db_factory() as session:
            result = await session.execute(
                update(TelegramUser)
                .where(TelegramUser.telegram_id == telegram_id, *criteria)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    async def unlink_wallet(self, telegram_id: int) -> bool:
        return await self.update_where(
            telegram_id,
            {"wallet_address": None, "linked_at": None},
            TelegramUser.wallet_address.is_not(None),
        )

    async def toggle_notifications(self, telegram_id: int) -> bool:
        """Flip the preference in one statement and return the new value."""
        async with self.db_factory() as session:
            await session.execute(
                update(TelegramUser)
                .where(TelegramUser.telegram_id == telegram_id)
                .values(notifications_enabled=not_(TelegramUser.notifications_enabled))
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            q = await session.execute(
                select(TelegramUser.notifications_enabled).where(TelegramUser.telegram_id == telegram_id)
            )
            return bool(q.scalar_one())
