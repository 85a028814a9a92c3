"""Tests for data models."""

from datetime import datetime, timezone

from intake.models import DialogueState, Message, MuteReason, Session, TraceEvent


class TestSession:
    """Tests for Session model."""

    def test_create_session_defaults(self):
        ts = datetime.now(timezone.utc)
        session = Session(
            contact_id="+5511999990000",
            dialogue_state=DialogueState.INITIAL,
            last_activity_at=ts,
            created_at=ts,
        )
        assert session.collected_fields == {}
        assert session.pending_field is None
        assert session.mute_until is None
        assert session.mute_reason is None
        assert session.blocked_until is None
        assert session.first_message == ""

    def test_name_comes_from_collected_fields(self):
        ts = datetime.now(timezone.utc)
        session = Session(
            contact_id="+5511999990000",
            dialogue_state=DialogueState.WAITING_OPTION,
            last_activity_at=ts,
            created_at=ts,
            collected_fields={"name": "Maria"},
        )
        assert session.name == "Maria"

    def test_empty_name_is_none(self):
        ts = datetime.now(timezone.utc)
        session = Session(
            contact_id="+5511999990000",
            dialogue_state=DialogueState.WAITING_OPTION,
            last_activity_at=ts,
            created_at=ts,
            collected_fields={"name": ""},
        )
        assert session.name is None

    def test_collected_fields_not_shared(self):
        ts = datetime.now(timezone.utc)
        a = Session("+1", DialogueState.INITIAL, ts, ts)
        b = Session("+2", DialogueState.INITIAL, ts, ts)
        a.collected_fields["name"] = "Ana"
        assert b.collected_fields == {}


class TestEnums:
    """Tests for DialogueState and MuteReason."""

    def test_dialogue_state_is_str(self):
        assert DialogueState.OPTION_3_DETAILS == "OPTION_3_DETAILS"
        assert DialogueState("FORWARDED_TO_HUMAN") is DialogueState.FORWARDED_TO_HUMAN

    def test_closed_state_set(self):
        assert len(DialogueState) == 10

    def test_mute_reasons(self):
        assert MuteReason("cooldown") is MuteReason.COOLDOWN
        assert MuteReason("manual_reply") is MuteReason.MANUAL_REPLY


class TestMessage:
    """Tests for Message model."""

    def test_create_inbound_message(self):
        ts = datetime.now(timezone.utc)
        msg = Message(
            id="msg1",
            contact_id="+5511999990000",
            direction="inbound",
            origin="contact",
            content="Oi",
            timestamp=ts,
        )
        assert msg.direction == "inbound"
        assert msg.origin == "contact"
        assert msg.timestamp == ts


class TestTraceEvent:
    """Tests for TraceEvent model."""

    def test_create_trace_event(self):
        ts = datetime.now(timezone.utc)
        event = TraceEvent(
            id="trace1",
            event_type="opted_out",
            actor="exclusion_manager",
            data={"contact_id": "+5511999990000"},
            timestamp=ts,
        )
        assert event.event_type == "opted_out"
        assert event.data["contact_id"] == "+5511999990000"
