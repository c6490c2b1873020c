from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from walletbot.core.errors import (
    AlreadyLinkedError,
    ExpiredError,
    InvalidInputError,
    SignatureMismatchError,
    TokenNotFoundError,
)
from walletbot.core.fmt import safe_html
from walletbot.core.signatures import challenge_message, is_address, recover_address
from walletbot.db.models import TelegramUser, utcnow
from walletbot.services.users import UserService

logger = logging.getLogger(__name__)

Notifier = Callable[[int, str], Awaitable[None]]


@dataclass(frozen=True)
class LinkRequest:
    token: str
    url: str
    expires_at: datetime


@dataclass(frozen=True)
class LinkResult:
    telegram_id: int
    wallet_address: str


class LinkService:
    """Wallet-link handshake: issue a short-lived token, then bind the wallet that signs it."""

    def __init__(
        self,
        users: UserService,
        project_url: str,
        token_length: int = 32,
        ttl_minutes: int = 15,
        notifier: Notifier | None = None,
        recover: Callable[[str, str], str] = recover_address,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.users = users
        self.project_url = project_url.rstrip("/")
        self.token_length = token_length
        self.ttl = timedelta(minutes=ttl_minutes)
        self.notifier = notifier
        self.recover = recover
        self.clock = clock

    def _new_token(self) -> str:
        return secrets.token_hex((self.token_length + 1) // 2)[: self.token_length]

    def link_url(self, token: str) -> str:
        return f"{self.project_url}/link-telegram?code={token}"

    async def issue(self, user: TelegramUser) -> LinkRequest:
        """Issue a fresh token, overwriting (and so invalidating) any earlier one."""
        if user.wallet_address:
            raise AlreadyLinkedError()

        token = self._new_token()
        expires_at = self.clock() + self.ttl
        matched = await self.users.update_where(
            user.telegram_id,
            {"link_code": token, "link_code_expires": expires_at},
            TelegramUser.wallet_address.is_(None),
        )
        if not matched:
            # Linked from another request since the snapshot was taken.
            raise AlreadyLinkedError()
        logger.info("link_token_issued", extra={"event": "link_token_issued", "user_id": user.telegram_id})
        return LinkRequest(token=token, url=self.link_url(token), expires_at=expires_at)

    async def verify(self, token: str, claimed_address: str, signature: str) -> LinkResult:
        token = (token or "").strip()
        claimed_address = (claimed_address or "").strip()
        if not token:
            raise TokenNotFoundError()
        if not is_address(claimed_address):
            raise InvalidInputError("Invalid wallet address.")

        user = await self.users.get_by_link_code(token)
        if user is None:
            raise TokenNotFoundError()

        now = self.clock()
        if user.link_code_expires is None or now > user.link_code_expires:
            raise ExpiredError()

        recovered = self.recover(challenge_message(token), signature)
        wallet = claimed_address.lower()
        if recovered.lower() != wallet:
            raise SignatureMismatchError()

        # Binding and token consumption happen in one statement; a replay or a
        # concurrent verify of the same token matches zero rows.
        matched = await self.users.update_where(
            user.telegram_id,
            {"wallet_address": wallet, "linked_at": now, "link_code": None, "link_code_expires": None},
            TelegramUser.link_code == token,
            TelegramUser.link_code_expires >= now,
        )
        if not matched:
            raise TokenNotFoundError()

        logger.info("wallet_linked", extra={"event": "wallet_linked", "user_id": user.telegram_id})
        await self._notify_linked(user.telegram_id, wallet)
        return LinkResult(telegram_id=user.telegram_id, wallet_address=wallet)

    async def _notify_linked(self, telegram_id: int, wallet: str) -> None:
        if self.notifier is None:
            return
        text = (
            "✅ Wallet linked successfully!\n\n"
            f"<code>{safe_html(wallet)}</code>\n\n"
            "Use /portfolio to check your balance."
        )
        try:
            await self.notifier(telegram_id, text)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "link_notify_failed",
                extra={"event": "link_notify_failed", "user_id": telegram_id, "error": str(exc)},
            )
