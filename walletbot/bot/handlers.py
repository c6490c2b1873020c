from __future__ import annotations

import logging

from aiogram import Router
from aiogram.exceptions import TelegramAPIError
from aiogram.types import LinkPreviewOptions, Message

from walletbot.bot.keyboards import link_wallet_kb
from walletbot.bot.router import InboundMessage
from walletbot.core.container import ServiceHub

router = Router()
_hub: ServiceHub | None = None
logger = logging.getLogger(__name__)

_SEEN_TTL = 60 * 60 * 6


def init_handlers(hub: ServiceHub) -> None:
    global _hub
    _hub = hub


def _require_hub() -> ServiceHub:
    if _hub is None:
        raise RuntimeError("Handlers not initialized")
    return _hub


async def _acquire_message_once(hub: ServiceHub, message: Message) -> bool:
    """Drop transport redeliveries. Fails open when Redis is unreachable."""
    key = f"seen:message:{message.chat.id}:{message.message_id}"
    return await hub.cache.set_if_absent(key, ttl=_SEEN_TTL, default=True)


@router.message()
async def on_message(message: Message) -> None:
    if not message.text or message.from_user is None:
        return
    hub = _require_hub()
    if not await _acquire_message_once(hub, message):
        return

    inbound = InboundMessage(
        participant_id=message.from_user.id,
        chat_id=message.chat.id,
        text=message.text,
        username=message.from_user.username,
    )
    reply = await hub.command_router.dispatch(inbound)
    if reply is None:
        return

    try:
        await message.answer(
            reply.text,
            parse_mode=reply.parse_mode,
            link_preview_options=LinkPreviewOptions(is_disabled=reply.disable_preview),
            reply_markup=link_wallet_kb(reply.link_url) if reply.link_url else None,
        )
    except TelegramAPIError as exc:
        # The update is still acknowledged; Telegram must not redeliver it.
        logger.warning(
            "reply_send_failed",
            extra={"event": "reply_send_failed", "chat_id": message.chat.id, "error": str(exc)},
        )
