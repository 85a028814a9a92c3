"""Translates transport-native events into engine calls."""

from typing import Any, Callable, Protocol

from ..clock import IClock
from ..logging_config import get_logger
from .transport import InboundEvent, ITransport, is_group_id, to_contact_id

logger = get_logger(__name__)


class IInboundPort(Protocol):
    """What the adapter needs from the conversation engine."""

    async def handle_inbound(self, contact_id: str, text: str) -> Any:
        """Process one inbound text from a contact."""
        ...

    async def register_outbound_echo(self, contact_id: str, text: str) -> bool:
        """Classify an echo of our own outgoing message; True if manual."""
        ...


class TransportAdapter:
    """Inbound side of the transport.

    Group messages are discarded here and never reach the engine.
    """

    def __init__(self, transport: ITransport, engine: IInboundPort, clock: IClock):
        self._transport = transport
        self._engine = engine
        self._clock = clock
        self._ready_listeners: list[Callable[[], None]] = []
        self._disconnect_listeners: list[Callable[[str | None], None]] = []

    def add_ready_listener(self, listener: Callable[[], None]) -> None:
        self._ready_listeners.append(listener)

    def add_disconnect_listener(self, listener: Callable[[str | None], None]) -> None:
        self._disconnect_listeners.append(listener)

    async def on_message(self, event: InboundEvent) -> Any:
        """Inbound message from a contact. Returns the engine outcome or None."""
        if event.is_group or is_group_id(event.sender_id):
            logger.debug("Ignoring group message from %s", event.sender_id)
            return None
        return await self._engine.handle_inbound(to_contact_id(event.sender_id), event.text)

    async def on_own_message(self, recipient_id: str, text: str) -> bool:
        """Echo of a message sent from the paired account."""
        if is_group_id(recipient_id):
            return False
        return await self._engine.register_outbound_echo(to_contact_id(recipient_id), text)

    def on_ready(self) -> None:
        status = self._transport.status
        status.ready = True
        status.qr_code = None
        status.disconnect_reason = None
        status.ready_since = self._clock.now()
        logger.info("Transport ready")
        for listener in self._ready_listeners:
            listener()

    def on_disconnected(self, reason: str | None = None) -> None:
        status = self._transport.status
        status.ready = False
        status.disconnect_reason = reason
        logger.warning("Transport disconnected: %s", reason)
        for listener in self._disconnect_listeners:
            listener(reason)

    def on_qr(self, qr_code: str) -> None:
        self._transport.status.qr_code = qr_code
        logger.info("Pairing code received")
