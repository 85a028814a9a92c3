"""Transport module."""

from .adapter import IInboundPort, TransportAdapter
from .transport import (
    ConnectionStatus,
    GatewayTransport,
    InboundEvent,
    InMemoryTransport,
    ITransport,
    SentMessage,
    is_group_id,
    to_chat_id,
    to_contact_id,
)

__all__ = [
    "ConnectionStatus",
    "GatewayTransport",
    "IInboundPort",
    "InboundEvent",
    "InMemoryTransport",
    "ITransport",
    "SentMessage",
    "TransportAdapter",
    "is_group_id",
    "to_chat_id",
    "to_contact_id",
]
