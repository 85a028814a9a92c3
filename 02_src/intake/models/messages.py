"""Message log data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal


@dataclass
class Message:
    """A single message exchanged with a contact."""

    id: str
    contact_id: str
    direction: Literal["inbound", "outbound"]
    origin: Literal["contact", "bot", "operator"]
    content: str
    timestamp: datetime
