"""Session-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class DialogueState(str, Enum):
    """Closed set of dialogue states a session can be in."""

    INITIAL = "INITIAL"
    WAITING_NAME = "WAITING_NAME"
    WAITING_OPTION = "WAITING_OPTION"
    OPTION_1_DETAILS = "OPTION_1_DETAILS"
    OPTION_2_DETAILS = "OPTION_2_DETAILS"
    OPTION_3_DETAILS = "OPTION_3_DETAILS"
    OPTION_4_DETAILS = "OPTION_4_DETAILS"
    OPTION_5_DETAILS = "OPTION_5_DETAILS"
    FORWARDED_TO_HUMAN = "FORWARDED_TO_HUMAN"
    COMPLETED = "COMPLETED"


class MuteReason(str, Enum):
    """Why automated replies are muted for a contact."""

    COOLDOWN = "cooldown"
    MANUAL_REPLY = "manual_reply"


@dataclass
class Session:
    """Durable per-contact dialogue record."""

    contact_id: str
    # Raw string when the stored value is not a known state
    dialogue_state: DialogueState | str
    last_activity_at: datetime
    created_at: datetime
    first_message: str = ""
    pending_field: str | None = None
    collected_fields: dict[str, str] = field(default_factory=dict)
    mute_until: datetime | None = None
    mute_reason: MuteReason | None = None
    blocked_until: datetime | None = None

    @property
    def name(self) -> str | None:
        return self.collected_fields.get("name") or None
