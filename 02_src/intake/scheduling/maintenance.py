"""Maintenance timers: stale-session eviction and the nightly reset."""

from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo

from ..clock import IClock
from ..config import EngineSettings
from ..guard import SingleFlightGuard
from ..logging_config import get_logger
from ..storage import IStorage
from ..tracker import ITracker
from .scheduler import IScheduler, ScheduledCall

logger = get_logger(__name__)


def resolve_timezone(name: str | None) -> tzinfo | None:
    """IANA zone by name. None means the host's local zone, looked up per call."""
    if name:
        return ZoneInfo(name)
    return None


def next_midnight(now: datetime, tz: tzinfo | None) -> datetime:
    """First local midnight strictly after `now`, returned in UTC."""
    local_now = now.astimezone(tz)
    next_day = local_now.date() + timedelta(days=1)
    if tz is None:
        # Naive local time; astimezone() applies the offset in force that night
        midnight = datetime.combine(next_day, time(0, 0)).astimezone()
    else:
        midnight = datetime.combine(next_day, time(0, 0), tzinfo=tz)
    return midnight.astimezone(timezone.utc)


def seconds_until_next_midnight(now: datetime, tz: tzinfo | None) -> float:
    """Delay until the next local midnight; recomputed per cycle for DST."""
    return (next_midnight(now, tz) - now.astimezone(timezone.utc)).total_seconds()


class IMaintenanceScheduler(Protocol):
    """Repeating housekeeping over the session store."""

    def start(self) -> None:
        """Arm both timers (idempotent)."""
        ...

    def stop(self) -> None:
        """Cancel both timers."""
        ...

    async def trigger_now(self) -> dict:
        """Run the eviction sweep immediately."""
        ...

    def status(self) -> dict:
        """Running flag and schedule information."""
        ...


class MaintenanceScheduler:
    """Stale-session eviction plus a self-rescheduling midnight reset.

    Both timers are one-shot calls on the injected scheduler that re-arm
    themselves after firing, so a ManualScheduler can drive them in tests.
    """

    def __init__(
        self,
        storage: IStorage,
        scheduler: IScheduler,
        clock: IClock,
        settings: EngineSettings,
        tracker: ITracker | None = None,
        guard: SingleFlightGuard | None = None,
    ):
        self._storage = storage
        self._scheduler = scheduler
        self._clock = clock
        self._settings = settings
        self._tracker = tracker
        self._guard = guard
        self._tz = resolve_timezone(settings.reset_timezone)

        self._running = False
        self._eviction_call: ScheduledCall | None = None
        self._reset_call: ScheduledCall | None = None
        self._next_reset_at: datetime | None = None
        self._last_eviction_at: datetime | None = None
        self._last_reset_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Arm both timers. The first eviction runs right away."""
        if self._running:
            logger.debug("Maintenance scheduler already running")
            return

        self._running = True
        self._eviction_call = self._scheduler.call_later(0, self._eviction_tick)
        self._schedule_midnight_reset()
        logger.info(
            "Maintenance scheduler started (eviction every %s, next reset at %s)",
            self._settings.eviction_interval,
            self._next_reset_at.isoformat() if self._next_reset_at else None,
        )

    def stop(self) -> None:
        """Cancel both timers."""
        if not self._running:
            return

        self._running = False
        for call in (self._eviction_call, self._reset_call):
            if call:
                call.cancel()
        self._eviction_call = None
        self._reset_call = None
        self._next_reset_at = None
        logger.info("Maintenance scheduler stopped")

    async def run_eviction(self) -> int:
        """Delete sessions idle for longer than eviction_max_age."""
        now = self._clock.now()
        cutoff = now - self._settings.eviction_max_age
        deleted = await self._storage.delete_sessions_inactive_since(cutoff)
        self._last_eviction_at = now

        if deleted:
            logger.info("Evicted %d stale sessions (cutoff %s)", deleted, cutoff.isoformat())
        else:
            logger.debug("No stale sessions to evict")

        if self._tracker:
            await self._tracker.track(
                "sessions_evicted",
                "maintenance",
                {"deleted": deleted, "cutoff": cutoff.isoformat()},
            )
        return deleted

    async def run_midnight_reset(self) -> int:
        """Reset every session that is neither opted out nor mid-step."""
        now = self._clock.now()
        in_flight = self._guard.snapshot() if self._guard else []
        reset = await self._storage.reset_sessions_except_blocked(now, skip=in_flight)
        self._last_reset_at = now
        logger.info("Nightly reset returned %d sessions to INITIAL", reset)
        if in_flight:
            logger.info("Nightly reset skipped in-flight contacts: %s", in_flight)

        if self._tracker:
            await self._tracker.track(
                "sessions_reset",
                "maintenance",
                {"reset": reset, "skipped": in_flight},
            )
        return reset

    async def trigger_now(self) -> dict:
        """Run the eviction sweep immediately (operator housekeeping trigger)."""
        deleted = await self.run_eviction()
        return {"evicted": deleted}

    def status(self) -> dict:
        """Running flag and schedule information."""
        return {
            "running": self._running,
            "eviction_interval_seconds": self._settings.eviction_interval.total_seconds(),
            "eviction_max_age_seconds": self._settings.eviction_max_age.total_seconds(),
            "next_reset_at": self._next_reset_at,
            "last_eviction_at": self._last_eviction_at,
            "last_reset_at": self._last_reset_at,
        }

    async def _eviction_tick(self) -> None:
        try:
            await self.run_eviction()
        except Exception as e:
            logger.error("Eviction sweep failed: %s", e, exc_info=True)
        finally:
            if self._running:
                self._eviction_call = self._scheduler.call_later(
                    self._settings.eviction_interval.total_seconds(),
                    self._eviction_tick,
                )

    def _schedule_midnight_reset(self) -> None:
        now = self._clock.now()
        self._next_reset_at = next_midnight(now, self._tz)
        delay = seconds_until_next_midnight(now, self._tz)
        self._reset_call = self._scheduler.call_later(delay, self._midnight_tick)

    async def _midnight_tick(self) -> None:
        try:
            await self.run_midnight_reset()
        except Exception as e:
            logger.error("Nightly reset failed: %s", e, exc_info=True)
        finally:
            if self._running:
                self._schedule_midnight_reset()
