"""Scripted dialogue state machine."""

from typing import Awaitable, Callable, Protocol

from ..clock import IClock
from ..config import EngineSettings
from ..dispatch import IMessageDispatcher
from ..exclusion import IExclusionManager
from ..logging_config import get_logger
from ..models import DialogueState, Session
from ..scheduling import IScheduler
from ..storage import IStorage
from ..tracker import ITracker
from . import templates
from .flow import (
    BRANCHES,
    BRANCHES_BY_OPTION,
    BRANCHES_BY_STATE,
    FORWARD_OPTION,
    NAME_FIELD,
    SELECTED_OPTION_FIELD,
    Branch,
)

logger = get_logger(__name__)

StateHandler = Callable[[Session, str], Awaitable[Session]]


class IDialogueStateMachine(Protocol):
    """Advances one session by one inbound text."""

    async def step(self, session: Session, text: str) -> Session:
        """Run the handler for the session's current state."""
        ...

    async def show_menu(self, session: Session) -> Session:
        """Clear any cool-down and re-send the personalized main menu."""
        ...

    async def forward_to_human(self, session: Session) -> Session:
        """Hand the contact over to a human attendant."""
        ...

    async def reset(self, session: Session, clear_block: bool = False) -> Session:
        """Back to INITIAL with nothing collected."""
        ...


class DialogueStateMachine:
    """Validates input against the current state, advances it and replies.

    Field handlers derive the next empty field from `collected_fields`, so a
    step interrupted after a partial write is resumed correctly on the next
    event. Welcome/name-prompt and name/menu pairs are paced through the
    scheduler; the state change itself is persisted before the step returns.
    """

    def __init__(
        self,
        storage: IStorage,
        dispatcher: IMessageDispatcher,
        exclusion: IExclusionManager,
        scheduler: IScheduler,
        clock: IClock,
        settings: EngineSettings,
        tracker: ITracker | None = None,
    ):
        self._storage = storage
        self._dispatcher = dispatcher
        self._exclusion = exclusion
        self._scheduler = scheduler
        self._clock = clock
        self._settings = settings
        self._tracker = tracker

        self._handlers: dict[DialogueState, StateHandler] = {
            DialogueState.INITIAL: self._handle_initial,
            DialogueState.WAITING_NAME: self._handle_name,
            DialogueState.WAITING_OPTION: self._handle_option,
            DialogueState.FORWARDED_TO_HUMAN: self._handle_forwarded,
            DialogueState.COMPLETED: self._handle_completed,
        }
        for branch in BRANCHES:
            self._handlers[branch.state] = self._handle_branch

    async def step(self, session: Session, text: str) -> Session:
        """Run the handler for the session's current state."""
        handler = self._handlers.get(session.dialogue_state)
        if handler is None:
            logger.warning(
                "Unknown state %r for %s, restarting from INITIAL",
                session.dialogue_state,
                session.contact_id,
            )
            handler = self._handle_initial
        return await handler(session, text)

    async def show_menu(self, session: Session) -> Session:
        """Clear any cool-down and re-send the personalized main menu."""
        await self._exclusion.clear_mute(session)
        session.dialogue_state = DialogueState.WAITING_OPTION
        session.pending_field = SELECTED_OPTION_FIELD
        await self._save(session)
        await self._send(session, templates.main_menu(session.name))
        return session

    async def forward_to_human(self, session: Session) -> Session:
        """Hand the contact over to a human; automation stops replying."""
        session.dialogue_state = DialogueState.FORWARDED_TO_HUMAN
        session.pending_field = None
        await self._save(session)
        if self._tracker:
            await self._tracker.track(
                "forwarded_to_human",
                "dialogue",
                {"contact_id": session.contact_id},
            )
        return session

    async def reset(self, session: Session, clear_block: bool = False) -> Session:
        """Back to INITIAL with nothing collected. Keeps an opt-out unless asked."""
        session.dialogue_state = DialogueState.INITIAL
        session.pending_field = None
        session.collected_fields = {}
        session.mute_until = None
        session.mute_reason = None
        if clear_block:
            session.blocked_until = None
        await self._save(session)
        return session

    async def mark_completed(self, session: Session) -> Session:
        session.dialogue_state = DialogueState.COMPLETED
        session.pending_field = None
        session.last_activity_at = self._clock.now()
        return await self._exclusion.start_cooldown(session)

    # State handlers

    async def _handle_initial(self, session: Session, text: str) -> Session:
        await self._send(session, templates.welcome())
        session.dialogue_state = DialogueState.WAITING_NAME
        session.pending_field = NAME_FIELD
        await self._save(session)
        self._send_later(session.contact_id, templates.name_prompt())
        return session

    async def _handle_name(self, session: Session, text: str) -> Session:
        name = text.strip()
        if name and NAME_FIELD not in session.collected_fields:
            session.collected_fields[NAME_FIELD] = name
        session.dialogue_state = DialogueState.WAITING_OPTION
        session.pending_field = SELECTED_OPTION_FIELD
        await self._save(session)
        self._send_later(session.contact_id, templates.main_menu(session.name))
        return session

    async def _handle_option(self, session: Session, text: str) -> Session:
        choice = text.strip()

        if choice == FORWARD_OPTION:
            session.collected_fields[SELECTED_OPTION_FIELD] = choice
            await self._send(session, templates.forwarded_to_human())
            return await self.forward_to_human(session)

        branch = BRANCHES_BY_OPTION.get(choice)
        if branch is None:
            logger.debug("Invalid option %r from %s", choice, session.contact_id)
            await self._send(session, templates.invalid_option())
            return session

        session.collected_fields[SELECTED_OPTION_FIELD] = choice
        session.dialogue_state = branch.state
        first = branch.next_missing(session.collected_fields)
        if first is None:
            return await self._complete(session, branch)

        session.pending_field = first.key
        await self._save(session)
        if first is branch.fields[0]:
            await self._send(session, templates.branch_opening(branch))
        else:
            await self._send(session, templates.field_prompt(first))
        return session

    async def _handle_branch(self, session: Session, text: str) -> Session:
        branch = BRANCHES_BY_STATE[session.dialogue_state]
        current = branch.next_missing(session.collected_fields)
        answer = text.strip()
        if current is not None and not answer:
            logger.debug("Empty answer for %s from %s", current.key, session.contact_id)
            await self._send(session, templates.field_prompt(current))
            return session
        if current is not None:
            session.collected_fields[current.key] = answer

        upcoming = branch.next_missing(session.collected_fields)
        if upcoming is None:
            return await self._complete(session, branch)

        session.pending_field = upcoming.key
        await self._save(session)
        await self._send(session, templates.field_prompt(upcoming))
        return session

    async def _handle_forwarded(self, session: Session, text: str) -> Session:
        logger.info(
            "Message from %s left for the human attendant",
            session.contact_id,
            extra={"context": {"contact_id": session.contact_id, "text": text[:100]}},
        )
        return session

    async def _handle_completed(self, session: Session, text: str) -> Session:
        # Only reached once the cool-down has lapsed: start a fresh cycle
        logger.info("Starting a new cycle for %s", session.contact_id)
        session.collected_fields = {}
        session.pending_field = None
        session.mute_until = None
        session.mute_reason = None
        return await self._handle_initial(session, text)

    # Helpers

    async def _complete(self, session: Session, branch: Branch) -> Session:
        await self.mark_completed(session)
        await self._send(session, templates.summary(session.collected_fields))
        await self._send(session, templates.thank_you())

        if self._tracker:
            await self._tracker.track(
                "branch_completed",
                "dialogue",
                {
                    "contact_id": session.contact_id,
                    "option": branch.option,
                    "fields": dict(session.collected_fields),
                },
            )
        return session

    async def _save(self, session: Session) -> None:
        session.last_activity_at = self._clock.now()
        await self._storage.save_session(session)

    async def _send(self, session: Session, text: str) -> bool:
        sent = await self._dispatcher.send(session.contact_id, text)
        if not sent:
            logger.warning("Reply to %s was not delivered", session.contact_id)
        return sent

    def _send_later(self, contact_id: str, text: str) -> None:
        async def deliver() -> None:
            # The contact may have opted out or been taken over meanwhile
            session = await self._storage.get_session(contact_id)
            if session is None:
                logger.debug("Paced reply to %s dropped, session gone", contact_id)
                return
            exclusion = self._exclusion.active_exclusion(session, self._clock.now())
            if exclusion:
                logger.info(
                    "Paced reply to %s dropped (%s)",
                    contact_id,
                    exclusion.reason or exclusion.kind.value,
                )
                return
            if not await self._dispatcher.send(contact_id, text):
                logger.warning("Paced reply to %s was not delivered", contact_id)

        self._scheduler.call_later(self._settings.pacing_delay, deliver)
