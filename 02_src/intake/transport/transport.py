"""Messaging transport port and its implementations."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import httpx

from ..logging_config import get_logger

logger = get_logger(__name__)

CONTACT_SUFFIX = "@c.us"
GROUP_SUFFIX = "@g.us"


def to_contact_id(raw_id: str) -> str:
    """Normalize a transport chat id ("5511999@c.us") to "+5511999"."""
    number = raw_id.strip().replace(CONTACT_SUFFIX, "")
    return number if number.startswith("+") else f"+{number}"


def to_chat_id(contact_id: str) -> str:
    """Inverse of to_contact_id."""
    return f"{contact_id.lstrip('+')}{CONTACT_SUFFIX}"


def is_group_id(raw_id: str) -> bool:
    return raw_id.strip().endswith(GROUP_SUFFIX)


@dataclass(frozen=True)
class InboundEvent:
    """A text message received from the transport."""

    sender_id: str
    text: str
    is_group: bool = False


@dataclass
class ConnectionStatus:
    """Connectivity as last reported by the transport."""

    ready: bool = False
    qr_code: str | None = None
    disconnect_reason: str | None = None
    ready_since: datetime | None = None


class ITransport(Protocol):
    """Outbound side of the messaging transport."""

    @property
    def status(self) -> ConnectionStatus:
        """Connectivity as last reported."""
        ...

    async def send(self, chat_id: str, text: str) -> None:
        """Deliver text; raises on failure."""
        ...

    async def close(self) -> None:
        """Release transport resources."""
        ...


@dataclass
class SentMessage:
    chat_id: str
    text: str


class InMemoryTransport:
    """Transport that records outbound messages instead of delivering them.

    Used when no gateway is configured (local runs, the simulator).
    """

    def __init__(self):
        self._status = ConnectionStatus()
        self.sent: list[SentMessage] = []

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    async def send(self, chat_id: str, text: str) -> None:
        if not self._status.ready:
            raise RuntimeError("Transport not ready")
        self.sent.append(SentMessage(chat_id=chat_id, text=text))

    async def close(self) -> None:
        self._status.ready = False


class GatewayTransport:
    """Sends through an HTTP messaging gateway.

    The gateway owns the device session; it reports ready/disconnected/QR and
    forwards inbound messages to this service's webhook routes.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout
        )
        self._status = ConnectionStatus()

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    async def send(self, chat_id: str, text: str) -> None:
        response = await self._client.post(
            "/messages", json={"chatId": chat_id, "text": text}
        )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("Gateway error: %s | Response: %s", exc, response.text)
            raise

    async def close(self) -> None:
        await self._client.aclose()
        self._status.ready = False

