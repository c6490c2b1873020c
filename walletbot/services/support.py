from __future__ import annotations

from walletbot.core.errors import InvalidInputError
from walletbot.db.models import SupportTicket

MIN_MESSAGE_LENGTH = 5
MAX_MESSAGE_LENGTH = 4000


class SupportService:
    def __init__(self, db_factory) -> None:
        self.db_factory = db_factory

    async def open_ticket(self, telegram_id: int, message: str, subject: str = "Support") -> SupportTicket:
        message = (message or "").strip()
        if len(message) < MIN_MESSAGE_LENGTH:
            raise InvalidInputError("Usage: /support [your message]")
        async with self.db_factory() as session:
            ticket = SupportTicket(
                telegram_id=telegram_id,
                subject=subject,
                message=message[:MAX_MESSAGE_LENGTH],
                status="open",
            )
            session.add(ticket)
            await session.commit()
            await session.refresh(ticket)
            return ticket
