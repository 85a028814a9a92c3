"""Core data models for the intake engine."""

from .messages import Message
from .session import DialogueState, MuteReason, Session
from .tracing import TraceEvent

__all__ = [
    # Sessions
    "DialogueState",
    "MuteReason",
    "Session",
    # Message log
    "Message",
    # Tracing
    "TraceEvent",
]
