"""Audit trail data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A single audit event (opt-outs, suppressed events, sweeps)."""

    id: str
    event_type: str  # e.g. "opted_out", "inbound_suppressed"
    actor: str  # component that recorded the event
    data: dict
    timestamp: datetime
