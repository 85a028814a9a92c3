"""Dispatch module."""

from .dispatcher import (
    BOT_MARKER,
    IMessageDispatcher,
    MessageDispatcher,
    is_bot_message,
    strip_bot_marker,
)

__all__ = [
    "BOT_MARKER",
    "IMessageDispatcher",
    "MessageDispatcher",
    "is_bot_message",
    "strip_bot_marker",
]
