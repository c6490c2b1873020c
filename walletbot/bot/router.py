"""Command routing.

Turns raw chat text into a call on the command table with the sender's identity
resolved. The router never raises: every outcome, including store outages and
handler bugs, becomes either a ``Reply`` or ``None`` (stay silent).
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping

from walletbot.bot import templates
from walletbot.core.errors import BotError
from walletbot.core.fmt import safe_html
from walletbot.core.rate_limit import RateLimiter
from walletbot.db.models import TelegramUser
from walletbot.services.users import UserService

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "/"


@dataclass(frozen=True)
class InboundMessage:
    participant_id: int
    chat_id: int
    text: str | None
    username: str | None = None


@dataclass(frozen=True)
class Reply:
    text: str
    parse_mode: str = "HTML"
    disable_preview: bool = True
    link_url: str | None = None


@dataclass(frozen=True)
class CommandContext:
    user: TelegramUser
    chat_id: int
    args: str


CommandHandler = Callable[[CommandContext], Awaitable["Reply | str"]]


def parse_command(text: str | None, bot_username: str = "") -> tuple[str, str] | None:
    """Split ``/cmd[@bot] args`` into ``(cmd, args)``; None for anything else.

    Commands addressed to a different bot in a group chat are treated as noise.
    """
    text = (text or "").strip()
    if not text.startswith(COMMAND_PREFIX):
        return None
    parts = text.split(maxsplit=1)
    head = parts[0][len(COMMAND_PREFIX) :].lower()
    args = parts[1].strip() if len(parts) > 1 else ""
    name, _, mention = head.partition("@")
    if mention and bot_username and mention != bot_username.lower():
        return None
    return name, args


class CommandRouter:
    def __init__(
        self,
        users: UserService | None,
        commands: Mapping[str, CommandHandler],
        bot_username: str = "",
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        # users is None when no store is configured; every command then gets
        # the same unavailability notice.
        self.users = users
        self.commands = dict(commands)
        self.bot_username = bot_username.lstrip("@")
        self.rate_limiter = rate_limiter

    async def dispatch(self, inbound: InboundMessage) -> Reply | None:
        parsed = parse_command(inbound.text, self.bot_username)
        if parsed is None:
            return None
        name, args = parsed

        if self.users is None:
            return Reply(templates.SERVICE_UNAVAILABLE)
        handler = self.commands.get(name)
        if handler is None:
            return Reply(templates.UNKNOWN_COMMAND)

        if self.rate_limiter is not None:
            limit = await self.rate_limiter.check(inbound.participant_id)
            if not limit.allowed:
                return Reply(templates.SLOW_DOWN)

        try:
            user = await self.users.ensure_user(inbound.participant_id, inbound.username)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "identity_resolution_failed",
                extra={"event": "identity_resolution_failed", "user_id": inbound.participant_id, "error": str(exc)},
            )
            return Reply(templates.SERVICE_UNAVAILABLE)

        started = time.perf_counter()
        ctx = CommandContext(user=user, chat_id=inbound.chat_id, args=args)
        try:
            out = await handler(ctx)
        except BotError as exc:
            logger.info(
                "command_rejected",
                extra={"event": "command_rejected", "command": name, "user_id": user.telegram_id, "error": str(exc)},
            )
            return Reply(safe_html(str(exc)))
        except Exception:  # noqa: BLE001
            logger.exception(
                "command_failed", extra={"event": "command_failed", "command": name, "user_id": user.telegram_id}
            )
            return Reply(templates.GENERIC_ERROR)

        logger.info(
            "command_handled",
            extra={
                "event": "command_handled",
                "command": name,
                "user_id": user.telegram_id,
                "latency_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return out if isinstance(out, Reply) else Reply(out)
