"""Exclusion windows: opt-out, cool-down and manual-reply mute."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from ..clock import IClock
from ..config import EngineSettings
from ..logging_config import get_logger
from ..models import MuteReason, Session
from ..storage import IStorage
from ..tracker import ITracker

logger = get_logger(__name__)


class ExclusionKind(str, Enum):
    """Which window is suppressing automated replies."""

    OPTED_OUT = "opted_out"
    MUTED = "muted"


@dataclass(frozen=True)
class Exclusion:
    """An active exclusion window for a contact."""

    kind: ExclusionKind
    until: datetime
    reason: str | None = None

    def remaining(self, now: datetime) -> timedelta:
        return max(self.until - now, timedelta(0))


class IExclusionManager(Protocol):
    """Computes and mutates per-contact exclusion windows."""

    def active_exclusion(self, session: Session, now: datetime) -> Exclusion | None:
        """Pure read: the exclusion in force at `now`, opt-out first."""
        ...

    async def check(self, session: Session) -> Exclusion | None:
        """Active exclusion, clearing elapsed windows as a side effect."""
        ...

    async def opt_out(self, session: Session) -> Session:
        """Block the contact for opt_out_duration."""
        ...

    async def start_cooldown(self, session: Session) -> Session:
        """Mute the contact for the post-completion cool-down."""
        ...

    async def clear_mute(self, session: Session) -> Session:
        """Lift any mute window."""
        ...

    async def register_manual_reply(self, contact_id: str) -> Session:
        """Mute the bot because a human operator answered the contact."""
        ...

    async def unblock(self, contact_id: str) -> bool:
        """Clear both windows for a contact."""
        ...

    async def list_active(self) -> list[tuple[Session, Exclusion]]:
        """Contacts currently excluded."""
        ...


class ExclusionManager:
    """Lazy-expiring exclusion windows stored on the session record.

    Opt-out lives in `blocked_until`; cool-down and manual-reply mute share
    `mute_until` and differ only by `mute_reason`.
    """

    def __init__(
        self,
        storage: IStorage,
        clock: IClock,
        settings: EngineSettings,
        tracker: ITracker | None = None,
    ):
        self._storage = storage
        self._clock = clock
        self._settings = settings
        self._tracker = tracker

    def active_exclusion(self, session: Session, now: datetime) -> Exclusion | None:
        """Pure read: the exclusion in force at `now`, opt-out first."""
        if session.blocked_until and session.blocked_until > now:
            return Exclusion(ExclusionKind.OPTED_OUT, session.blocked_until, "stop")
        if session.mute_until and session.mute_until > now:
            reason = session.mute_reason.value if session.mute_reason else None
            return Exclusion(ExclusionKind.MUTED, session.mute_until, reason)
        return None

    async def check(self, session: Session) -> Exclusion | None:
        """Active exclusion, clearing elapsed windows as a side effect."""
        now = self._clock.now()
        exclusion = self.active_exclusion(session, now)
        if exclusion and exclusion.kind is ExclusionKind.OPTED_OUT:
            return exclusion

        expired = False
        if session.blocked_until and session.blocked_until <= now:
            logger.info("Opt-out for %s expired", session.contact_id)
            session.blocked_until = None
            expired = True
        if session.mute_until and session.mute_until <= now:
            logger.debug("Mute for %s expired", session.contact_id)
            session.mute_until = None
            session.mute_reason = None
            expired = True
        if expired:
            await self._storage.save_session(session)

        return exclusion

    async def opt_out(self, session: Session) -> Session:
        """Block the contact for opt_out_duration."""
        now = self._clock.now()
        session.blocked_until = now + self._settings.opt_out_duration
        session.last_activity_at = now
        await self._storage.save_session(session)

        logger.info(
            "Contact opted out until %s",
            session.blocked_until.isoformat(),
            extra={"context": {"contact_id": session.contact_id}},
        )
        if self._tracker:
            await self._tracker.track(
                "opted_out",
                "exclusion_manager",
                {
                    "contact_id": session.contact_id,
                    "blocked_until": session.blocked_until.isoformat(),
                },
            )
        return session

    async def start_cooldown(self, session: Session) -> Session:
        """Mute the contact for the post-completion cool-down."""
        return await self._mute(session, self._settings.cooldown, MuteReason.COOLDOWN)

    async def clear_mute(self, session: Session) -> Session:
        """Lift any mute window."""
        if session.mute_until is None and session.mute_reason is None:
            return session
        session.mute_until = None
        session.mute_reason = None
        await self._storage.save_session(session)
        return session

    async def register_manual_reply(self, contact_id: str) -> Session:
        """Mute the bot because a human operator answered the contact."""
        now = self._clock.now()
        session, _ = await self._storage.get_or_create_session(contact_id, "", now)
        session = await self._mute(
            session, self._settings.manual_reply_mute, MuteReason.MANUAL_REPLY
        )
        if self._tracker:
            await self._tracker.track(
                "manual_reply_detected",
                "exclusion_manager",
                {
                    "contact_id": contact_id,
                    "mute_until": session.mute_until.isoformat(),
                },
            )
        return session

    async def unblock(self, contact_id: str) -> bool:
        """Clear both windows for a contact. False if nothing was active."""
        session = await self._storage.get_session(contact_id)
        if session is None:
            return False

        was_excluded = self.active_exclusion(session, self._clock.now()) is not None
        session.blocked_until = None
        session.mute_until = None
        session.mute_reason = None
        await self._storage.save_session(session)

        if was_excluded:
            logger.info("Contact %s unblocked manually", contact_id)
            if self._tracker:
                await self._tracker.track(
                    "unblocked", "exclusion_manager", {"contact_id": contact_id}
                )
        return was_excluded

    async def list_active(self) -> list[tuple[Session, Exclusion]]:
        """Contacts currently excluded."""
        now = self._clock.now()
        sessions = await self._storage.list_excluded_sessions(now)
        active = []
        for session in sessions:
            exclusion = self.active_exclusion(session, now)
            if exclusion:
                active.append((session, exclusion))
        return active

    async def _mute(
        self, session: Session, duration: timedelta, reason: MuteReason
    ) -> Session:
        now = self._clock.now()
        session.mute_until = now + duration
        session.mute_reason = reason
        session.last_activity_at = now
        await self._storage.save_session(session)
        logger.info(
            "Contact %s muted until %s (%s)",
            session.contact_id,
            session.mute_until.isoformat(),
            reason.value,
        )
        return session
