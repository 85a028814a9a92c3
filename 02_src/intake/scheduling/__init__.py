"""Scheduling module: deferred calls and maintenance timers."""

from .scheduler import AsyncioScheduler, IScheduler, ScheduledCall, ScheduledCallback
from .maintenance import (
    IMaintenanceScheduler,
    MaintenanceScheduler,
    next_midnight,
    resolve_timezone,
    seconds_until_next_midnight,
)

__all__ = [
    "IScheduler",
    "AsyncioScheduler",
    "ScheduledCall",
    "ScheduledCallback",
    "IMaintenanceScheduler",
    "MaintenanceScheduler",
    "next_midnight",
    "resolve_timezone",
    "seconds_until_next_midnight",
]
