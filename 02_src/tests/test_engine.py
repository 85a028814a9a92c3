"""Tests for ConversationEngine."""

import asyncio
from datetime import timedelta

import pytest

from intake.dialogue import templates
from intake.dispatch import BOT_MARKER
from intake.engine import (
    ContactBusyError,
    ConversationEngine,
    InboundOutcome,
    SessionNotFoundError,
)
from intake.models import DialogueState, MuteReason

from conftest import sent_texts

C1 = "+5511999990001"
C2 = "+5511999990002"


async def converse(engine, scheduler, contact_id, *texts):
    """Send texts one at a time, letting paced replies go out in between."""
    outcomes = []
    for text in texts:
        outcomes.append(await engine.handle_inbound(contact_id, text))
        await scheduler.advance(2)
    return outcomes


class TestScenarios:
    """End-to-end conversations through the engine."""

    async def test_new_contact_greeting(self, engine, storage, scheduler, transport):
        outcome = await engine.handle_inbound(C1, "Hi")

        assert outcome is InboundOutcome.PROCESSED
        session = await storage.get_session(C1)
        assert session.first_message == "Hi"
        assert session.dialogue_state is DialogueState.WAITING_NAME

        await scheduler.advance(2)
        assert sent_texts(transport, C1) == [templates.welcome(), templates.name_prompt()]

    async def test_full_option_one_flow(
        self, engine, storage, scheduler, transport, clock, settings
    ):
        await converse(engine, scheduler, C1, "Hi", "Maria")
        assert sent_texts(transport, C1)[-1].startswith("Olá, Maria!")

        await converse(engine, scheduler, C1, "1", "5000 kWh", "no preference")

        session = await storage.get_session(C1)
        assert session.collected_fields == {
            "name": "Maria",
            "selectedOption": "1",
            "energyConsumption": "5000 kWh",
            "panelPreference": "no preference",
        }
        assert session.dialogue_state is DialogueState.COMPLETED
        completed_at = clock.now() - timedelta(seconds=2)
        assert session.mute_until == completed_at + settings.cooldown
        assert sent_texts(transport, C1)[-1] == templates.thank_you()

    async def test_inbound_messages_are_logged(self, engine, storage, scheduler):
        await converse(engine, scheduler, C1, "Hi")

        history = await engine.get_conversation_history(C1)
        assert [(m.direction, m.origin) for m in history] == [
            ("inbound", "contact"),
            ("outbound", "bot"),
            ("outbound", "bot"),
        ]


class TestCommands:
    """stop and menu interception."""

    async def test_stop_opts_out_silently(self, engine, storage, transport, clock):
        await engine.handle_inbound(C1, "Hi")
        transport.sent.clear()

        outcome = await engine.handle_inbound(C1, "  STOP ")

        assert outcome is InboundOutcome.OPTED_OUT
        assert transport.sent == []
        session = await storage.get_session(C1)
        assert session.blocked_until == clock.now() + timedelta(days=365)

    async def test_opted_out_contact_is_ignored(self, engine, storage, scheduler, transport):
        await converse(engine, scheduler, C1, "Hi", "stop")
        before = await storage.get_session(C1)
        transport.sent.clear()

        outcome = await engine.handle_inbound(C1, "oi")

        assert outcome is InboundOutcome.SUPPRESSED
        assert transport.sent == []
        after = await storage.get_session(C1)
        assert after.dialogue_state == before.dialogue_state
        assert after.collected_fields == before.collected_fields

        history = await storage.get_messages(C1)
        assert history[-1].content == "oi"
        events = await storage.get_trace_events(event_types=["inbound_suppressed"])
        assert events[0].data["reason"] == "opted_out"

    async def test_opt_out_dominates_menu(self, engine, storage, transport):
        await engine.handle_inbound(C1, "stop")
        transport.sent.clear()

        outcome = await engine.handle_inbound(C1, "menu")

        assert outcome is InboundOutcome.SUPPRESSED
        assert transport.sent == []
        session = await storage.get_session(C1)
        assert session.dialogue_state is DialogueState.INITIAL

    @pytest.mark.parametrize(
        "state",
        [
            DialogueState.INITIAL,
            DialogueState.WAITING_NAME,
            DialogueState.OPTION_3_DETAILS,
            DialogueState.FORWARDED_TO_HUMAN,
            DialogueState.COMPLETED,
        ],
    )
    async def test_menu_from_any_state(self, state, engine, storage, transport, clock):
        session, _ = await storage.get_or_create_session(C1, "Oi", clock.now())
        session.dialogue_state = state
        session.collected_fields = {"name": "Maria"}
        session.mute_until = clock.now() + timedelta(minutes=5)
        session.mute_reason = MuteReason.COOLDOWN
        await storage.save_session(session)

        outcome = await engine.handle_inbound(C1, "Menu")

        assert outcome is InboundOutcome.PROCESSED
        session = await storage.get_session(C1)
        assert session.dialogue_state is DialogueState.WAITING_OPTION
        assert session.mute_until is None
        assert sent_texts(transport, C1) == [templates.main_menu("Maria")]


class TestExclusions:
    """Cool-down and manual-reply mutes."""

    async def test_cooldown_suppresses_then_self_heals(
        self, engine, storage, scheduler, transport, clock
    ):
        await converse(engine, scheduler, C1, "Hi", "Maria", "1", "5000 kWh", "none")
        transport.sent.clear()

        assert await engine.handle_inbound(C1, "oi") is InboundOutcome.SUPPRESSED
        assert transport.sent == []

        clock.advance(timedelta(minutes=5))
        assert await engine.handle_inbound(C1, "oi") is InboundOutcome.PROCESSED

        session = await storage.get_session(C1)
        assert session.dialogue_state is DialogueState.WAITING_NAME
        assert session.collected_fields == {}
        assert session.mute_until is None
        assert sent_texts(transport, C1) == [templates.welcome()]

    async def test_manual_reply_echo_mutes(self, engine, storage, transport, clock):
        await engine.handle_inbound(C1, "Hi")
        transport.sent.clear()

        assert await engine.register_outbound_echo(C1, "Oi, aqui é o Pedro") is True

        session = await storage.get_session(C1)
        assert session.mute_reason is MuteReason.MANUAL_REPLY
        assert session.mute_until == clock.now() + timedelta(hours=24)

        assert await engine.handle_inbound(C1, "Oi Pedro") is InboundOutcome.SUPPRESSED
        assert transport.sent == []

    async def test_bot_echo_is_not_manual(self, engine, storage):
        await engine.handle_inbound(C1, "Hi")
        assert await engine.register_outbound_echo(C1, "welcome" + BOT_MARKER) is False

        session = await storage.get_session(C1)
        assert session.mute_until is None

    async def test_manual_reply_on_unknown_contact_creates_session(self, engine, storage):
        assert await engine.register_outbound_echo(C2, "Olá!") is True

        session = await storage.get_session(C2)
        assert session.mute_reason is MuteReason.MANUAL_REPLY
        assert session.dialogue_state is DialogueState.INITIAL


class TestPacedReplies:
    """Follow-ups deferred by the pacing delay honour exclusions at send time."""

    async def test_stop_within_pacing_delay_cancels_name_prompt(
        self, engine, scheduler, transport
    ):
        await engine.handle_inbound(C1, "Hi")
        transport.sent.clear()

        assert await engine.handle_inbound(C1, "stop") is InboundOutcome.OPTED_OUT
        await scheduler.advance(2)

        assert sent_texts(transport, C1) == []

    async def test_manual_reply_within_pacing_delay_cancels_menu(
        self, engine, storage, scheduler, transport
    ):
        await converse(engine, scheduler, C1, "Hi")
        await engine.handle_inbound(C1, "Maria")
        transport.sent.clear()

        assert await engine.register_outbound_echo(C1, "Oi Maria, aqui é o Pedro")
        await scheduler.advance(2)

        assert sent_texts(transport, C1) == []
        session = await storage.get_session(C1)
        assert session.dialogue_state is DialogueState.WAITING_OPTION
        assert session.mute_reason is MuteReason.MANUAL_REPLY

    async def test_paced_reply_still_sent_when_not_excluded(
        self, engine, scheduler, transport
    ):
        await converse(engine, scheduler, C1, "Hi", "Maria")

        assert sent_texts(transport, C1)[-1] == templates.main_menu("Maria")


class TestConcurrency:
    """Single-flight per contact."""

    async def test_concurrent_event_is_coalesced(self, engine, guard, storage, transport):
        guard.try_acquire(C1)

        outcome = await engine.handle_inbound(C1, "Hi")

        assert outcome is InboundOutcome.COALESCED
        assert await storage.get_session(C1) is None
        assert transport.sent == []

    async def test_contacts_proceed_independently(
        self, storage, dispatcher, exclusion, guard, clock, transport, tracker
    ):
        release = asyncio.Event()
        started = asyncio.Event()

        class SlowMachine:
            async def step(self, session, text):
                started.set()
                await release.wait()
                return session

            async def show_menu(self, session):
                return session

        engine = ConversationEngine(
            storage=storage,
            dispatcher=dispatcher,
            exclusion=exclusion,
            machine=SlowMachine(),
            guard=guard,
            clock=clock,
            tracker=tracker,
        )

        first = asyncio.create_task(engine.handle_inbound(C1, "Hi"))
        await started.wait()

        assert await engine.handle_inbound(C1, "Hi again") is InboundOutcome.COALESCED
        other = asyncio.create_task(engine.handle_inbound(C2, "Hi"))
        started.clear()
        await started.wait()
        assert sorted(engine.in_flight) == [C1, C2]

        release.set()
        assert await first is InboundOutcome.PROCESSED
        assert await other is InboundOutcome.PROCESSED
        assert engine.in_flight == []

    async def test_failure_apologizes_and_releases(
        self, storage, dispatcher, exclusion, guard, clock, transport
    ):
        class BrokenMachine:
            async def step(self, session, text):
                raise RuntimeError("disk full")

            async def show_menu(self, session):
                return session

        engine = ConversationEngine(
            storage=storage,
            dispatcher=dispatcher,
            exclusion=exclusion,
            machine=BrokenMachine(),
            guard=guard,
            clock=clock,
        )

        outcome = await engine.handle_inbound(C1, "Hi")

        assert outcome is InboundOutcome.FAILED
        assert sent_texts(transport, C1) == [templates.generic_error()]
        assert C1 not in guard


class TestOperatorOperations:
    """Operator-facing engine operations."""

    async def test_get_state_unknown_contact(self, engine):
        with pytest.raises(SessionNotFoundError):
            await engine.get_conversation_state(C1)

    async def test_list_conversations(self, engine, clock):
        await engine.handle_inbound(C1, "Hi")
        clock.advance(1)
        await engine.handle_inbound(C2, "Hi")

        sessions = await engine.list_conversations()
        assert [s.contact_id for s in sessions] == [C2, C1]

    async def test_reset_conversation(self, engine, storage, scheduler):
        await converse(engine, scheduler, C1, "Hi", "Maria", "stop")

        session = await engine.reset_conversation(C1)
        assert session.dialogue_state is DialogueState.INITIAL
        assert session.collected_fields == {}
        assert session.blocked_until is not None

        session = await engine.reset_conversation(C1, clear_block=True)
        assert session.blocked_until is None

    async def test_guarded_operations_raise_when_busy(self, engine, guard, storage, clock):
        await storage.get_or_create_session(C1, "Oi", clock.now())
        guard.try_acquire(C1)

        with pytest.raises(ContactBusyError):
            await engine.reset_conversation(C1)
        with pytest.raises(ContactBusyError):
            await engine.forward_to_human(C1)

    async def test_forward_to_human(self, engine, storage, clock, transport):
        await storage.get_or_create_session(C1, "Oi", clock.now())

        session = await engine.forward_to_human(C1)

        assert session.dialogue_state is DialogueState.FORWARDED_TO_HUMAN
        assert await engine.handle_inbound(C1, "Oi?") is InboundOutcome.PROCESSED
        assert transport.sent == []

    async def test_custom_message_bypasses_exclusions(self, engine, storage, transport):
        await engine.handle_inbound(C1, "stop")

        assert await engine.send_custom_message(C1, "Olá, Maria") is True
        assert sent_texts(transport, C1) == ["Olá, Maria"]
        assert transport.sent[-1].text.endswith(BOT_MARKER)

    async def test_custom_message_echo_does_not_mute(self, engine, storage, transport):
        await engine.handle_inbound(C1, "Hi")
        await engine.send_custom_message(C1, "Olá")

        echo = transport.sent[-1].text
        assert await engine.register_outbound_echo(C1, echo) is False

    async def test_unblock_and_list_excluded(self, engine, clock):
        await engine.handle_inbound(C1, "stop")

        [entry] = await engine.list_excluded_contacts()
        assert entry["contact_id"] == C1
        assert entry["kind"] == "opted_out"
        assert entry["remaining_seconds"] == 365 * 24 * 3600

        assert await engine.unblock_contact(C1) is True
        assert await engine.list_excluded_contacts() == []
        assert await engine.handle_inbound(C1, "Oi") is InboundOutcome.PROCESSED

    async def test_unblock_unknown_contact(self, engine):
        with pytest.raises(SessionNotFoundError):
            await engine.unblock_contact(C1)

    async def test_trigger_maintenance(self, engine, storage, clock):
        await storage.get_or_create_session(C1, "Oi", clock.now() - timedelta(days=31))

        result = await engine.trigger_maintenance_now()

        assert result == {"evicted": 1}
        assert await storage.get_session(C1) is None
