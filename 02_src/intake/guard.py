"""Per-contact single-flight guard."""

from contextlib import asynccontextmanager
from typing import AsyncIterator


class SingleFlightGuard:
    """Tracks contacts whose inbound event is currently being processed.

    A second event for an in-flight contact is dropped by the caller, not
    queued. Keys are disjoint, so different contacts never wait on each other.
    """

    def __init__(self):
        self._in_flight: set[str] = set()

    def __contains__(self, key: str) -> bool:
        return key in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)

    def try_acquire(self, key: str) -> bool:
        if key in self._in_flight:
            return False
        self._in_flight.add(key)
        return True

    def release(self, key: str) -> None:
        self._in_flight.discard(key)

    @asynccontextmanager
    async def claim(self, key: str) -> AsyncIterator[bool]:
        """Yield True when the key was acquired; it is released on exit."""
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    def snapshot(self) -> list[str]:
        return sorted(self._in_flight)
