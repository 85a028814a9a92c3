"""Clock abstraction so time can be controlled in tests."""

from datetime import datetime, timezone
from typing import Protocol


class IClock(Protocol):
    """Source of the current time (timezone-aware, UTC)."""

    def now(self) -> datetime:
        """Return the current instant."""
        ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
