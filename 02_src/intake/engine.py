"""Conversation engine: inbound port and operator operations."""

import uuid
from enum import Enum
from typing import Any

from .clock import IClock
from .dialogue import IDialogueStateMachine, templates
from .dispatch import IMessageDispatcher, is_bot_message, strip_bot_marker
from .exclusion import ExclusionKind, IExclusionManager
from .guard import SingleFlightGuard
from .logging_config import get_logger
from .models import Message, Session
from .scheduling import IMaintenanceScheduler
from .storage import IStorage
from .tracker import ITracker

logger = get_logger(__name__)

STOP_COMMAND = "stop"
MENU_COMMAND = "menu"


class InboundOutcome(str, Enum):
    """What happened to one inbound event."""

    PROCESSED = "processed"
    COALESCED = "coalesced"
    OPTED_OUT = "opted_out"
    SUPPRESSED = "suppressed"
    FAILED = "failed"


class ContactBusyError(RuntimeError):
    """An inbound event for the contact is being processed right now."""

    def __init__(self, contact_id: str):
        super().__init__(f"Contact {contact_id} is busy")
        self.contact_id = contact_id


class SessionNotFoundError(LookupError):
    """No session stored for the contact."""

    def __init__(self, contact_id: str):
        super().__init__(f"No conversation for {contact_id}")
        self.contact_id = contact_id


def normalize_command(text: str) -> str:
    return text.strip().lower()


class ConversationEngine:
    """Runs each inbound event through guard, commands, exclusions and dialogue.

    Order per event: single-flight claim, session lookup, "stop", exclusion
    check (opt-out dominates everything after "stop"), "menu", mute check,
    dialogue step. Any exception inside the step is logged, the contact gets a
    generic apology and the guard is released.
    """

    def __init__(
        self,
        storage: IStorage,
        dispatcher: IMessageDispatcher,
        exclusion: IExclusionManager,
        machine: IDialogueStateMachine,
        guard: SingleFlightGuard,
        clock: IClock,
        maintenance: IMaintenanceScheduler | None = None,
        tracker: ITracker | None = None,
    ):
        self._storage = storage
        self._dispatcher = dispatcher
        self._exclusion = exclusion
        self._machine = machine
        self._guard = guard
        self._clock = clock
        self._maintenance = maintenance
        self._tracker = tracker

    @property
    def in_flight(self) -> list[str]:
        return self._guard.snapshot()

    # Inbound port

    async def handle_inbound(self, contact_id: str, text: str) -> InboundOutcome:
        """Process one inbound text from a contact."""
        async with self._guard.claim(contact_id) as acquired:
            if not acquired:
                logger.debug("Coalesced event from busy contact %s", contact_id)
                return InboundOutcome.COALESCED

            try:
                return await self._process(contact_id, text)
            except Exception as e:
                logger.error(
                    f"Failed to process message from {contact_id}: {e}",
                    exc_info=True,
                    extra={"context": {"contact_id": contact_id}},
                )
                await self._dispatcher.send(contact_id, templates.generic_error())
                return InboundOutcome.FAILED

    async def _process(self, contact_id: str, text: str) -> InboundOutcome:
        now = self._clock.now()
        session, created = await self._storage.get_or_create_session(
            contact_id, text, now
        )
        if created:
            logger.info("New session for %s", contact_id)
            if self._tracker:
                await self._tracker.track(
                    "session_created", "engine", {"contact_id": contact_id}
                )

        await self._storage.save_message(
            Message(
                id=str(uuid.uuid4()),
                contact_id=contact_id,
                direction="inbound",
                origin="contact",
                content=text,
                timestamp=now,
            )
        )

        command = normalize_command(text)
        if command == STOP_COMMAND:
            await self._exclusion.opt_out(session)
            return InboundOutcome.OPTED_OUT

        exclusion = await self._exclusion.check(session)
        if exclusion and exclusion.kind is ExclusionKind.OPTED_OUT:
            logger.debug("Dropping message from opted-out contact %s", contact_id)
            await self._track_suppressed(contact_id, exclusion.kind.value)
            return InboundOutcome.SUPPRESSED

        if command == MENU_COMMAND:
            await self._machine.show_menu(session)
            return InboundOutcome.PROCESSED

        if exclusion:
            logger.debug(
                "Contact %s muted until %s (%s)",
                contact_id,
                exclusion.until.isoformat(),
                exclusion.reason,
            )
            await self._track_suppressed(contact_id, exclusion.reason)
            return InboundOutcome.SUPPRESSED

        await self._machine.step(session, text)
        return InboundOutcome.PROCESSED

    async def register_outbound_echo(self, contact_id: str, text: str) -> bool:
        """Classify an echo of an outgoing message; True if typed by a human."""
        if is_bot_message(text):
            return False

        await self._storage.save_message(
            Message(
                id=str(uuid.uuid4()),
                contact_id=contact_id,
                direction="outbound",
                origin="operator",
                content=text,
                timestamp=self._clock.now(),
            )
        )
        await self._exclusion.register_manual_reply(contact_id)
        return True

    # Operator operations

    async def get_conversation_state(self, contact_id: str) -> Session:
        session = await self._storage.get_session(contact_id)
        if session is None:
            raise SessionNotFoundError(contact_id)
        return session

    async def get_conversation_history(
        self, contact_id: str, limit: int = 100
    ) -> list[Message]:
        await self.get_conversation_state(contact_id)
        return await self._storage.get_messages(contact_id, limit=limit)

    async def list_conversations(self, limit: int = 100) -> list[Session]:
        return await self._storage.list_sessions(limit=limit)

    async def reset_conversation(
        self, contact_id: str, clear_block: bool = False
    ) -> Session:
        """Back to INITIAL. An opt-out survives unless clear_block is set."""
        async with self._guard.claim(contact_id) as acquired:
            if not acquired:
                raise ContactBusyError(contact_id)
            session = await self.get_conversation_state(contact_id)
            await self._machine.reset(session, clear_block=clear_block)

        logger.info("Conversation with %s reset by operator", contact_id)
        if self._tracker:
            await self._tracker.track(
                "conversation_reset",
                "operator",
                {"contact_id": contact_id, "clear_block": clear_block},
            )
        return session

    async def forward_to_human(self, contact_id: str) -> Session:
        async with self._guard.claim(contact_id) as acquired:
            if not acquired:
                raise ContactBusyError(contact_id)
            session = await self.get_conversation_state(contact_id)
            return await self._machine.forward_to_human(session)

    async def send_custom_message(self, contact_id: str, text: str) -> bool:
        """Operator override: sends regardless of guard and exclusions."""
        sent = await self._dispatcher.send(contact_id, strip_bot_marker(text))
        if self._tracker:
            await self._tracker.track(
                "custom_message_sent",
                "operator",
                {"contact_id": contact_id, "delivered": sent},
            )
        return sent

    async def trigger_maintenance_now(self) -> dict[str, Any]:
        if self._maintenance is None:
            raise RuntimeError("Maintenance scheduler not configured")
        return await self._maintenance.trigger_now()

    async def unblock_contact(self, contact_id: str) -> bool:
        await self.get_conversation_state(contact_id)
        return await self._exclusion.unblock(contact_id)

    async def list_excluded_contacts(self) -> list[dict[str, Any]]:
        now = self._clock.now()
        return [
            {
                "contact_id": session.contact_id,
                "kind": exclusion.kind.value,
                "reason": exclusion.reason,
                "until": exclusion.until,
                "remaining_seconds": int(exclusion.remaining(now).total_seconds()),
            }
            for session, exclusion in await self._exclusion.list_active()
        ]

    async def _track_suppressed(self, contact_id: str, reason: str | None) -> None:
        if self._tracker:
            await self._tracker.track(
                "inbound_suppressed",
                "engine",
                {"contact_id": contact_id, "reason": reason},
            )
