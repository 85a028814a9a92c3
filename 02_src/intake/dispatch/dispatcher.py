"""Outbound message dispatch with bot-origin tagging."""

import uuid
from typing import Protocol

from ..clock import IClock
from ..logging_config import get_logger
from ..models import Message
from ..storage import IStorage
from ..transport import ITransport, to_chat_id

logger = get_logger(__name__)

# Zero-width space appended to every bot message; an echo without it was
# typed by a human on the paired account.
BOT_MARKER = "\u200b"


def is_bot_message(text: str) -> bool:
    return text.endswith(BOT_MARKER)


def strip_bot_marker(text: str) -> str:
    return text[: -len(BOT_MARKER)] if is_bot_message(text) else text


class IMessageDispatcher(Protocol):
    """Best-effort outbound sends."""

    async def send(self, contact_id: str, text: str) -> bool:
        """Send text to a contact. False on any transport failure."""
        ...


class MessageDispatcher:
    """Tags, sends and records outbound messages. Never retries."""

    def __init__(self, transport: ITransport, storage: IStorage, clock: IClock):
        self._transport = transport
        self._storage = storage
        self._clock = clock

    async def send(self, contact_id: str, text: str) -> bool:
        """Send text to a contact. False on any transport failure."""
        if not self._transport.status.ready:
            logger.warning("Transport not ready, dropping message to %s", contact_id)
            return False

        try:
            await self._transport.send(to_chat_id(contact_id), text + BOT_MARKER)
        except Exception as e:
            logger.error(f"Send to {contact_id} failed: {e}")
            return False

        await self._record(contact_id, text)
        return True

    async def _record(self, contact_id: str, text: str) -> None:
        now = self._clock.now()
        try:
            await self._storage.save_message(
                Message(
                    id=str(uuid.uuid4()),
                    contact_id=contact_id,
                    direction="outbound",
                    origin="bot",
                    content=text,
                    timestamp=now,
                )
            )
            await self._storage.touch_session(contact_id, now)
        except Exception as e:
            logger.error(
                f"Bookkeeping for message to {contact_id} failed: {e}", exc_info=True
            )
