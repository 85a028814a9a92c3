"""Tracker implementation for the audit trail."""

import uuid
from typing import Protocol

from ..models import TraceEvent
from ..clock import IClock, SystemClock
from ..storage import IStorage


class ITracker(Protocol):
    """Records audit events (opt-outs, suppressed inbound events, sweeps)."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        ...


class Tracker:
    """Creates TraceEvents via direct track() calls."""

    def __init__(self, storage: IStorage, clock: IClock | None = None):
        self._storage = storage
        self._clock = clock or SystemClock()

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        trace_event = TraceEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            actor=actor,
            data=data,
            timestamp=self._clock.now(),
        )
        await self._storage.save_trace_event(trace_event)
