"""Sales intake engine."""

from .app import Application, IApplication
from .clock import IClock, SystemClock
from .config import EngineSettings
from .dialogue import DialogueStateMachine, IDialogueStateMachine
from .dispatch import IMessageDispatcher, MessageDispatcher
from .engine import (
    ContactBusyError,
    ConversationEngine,
    InboundOutcome,
    SessionNotFoundError,
)
from .exclusion import Exclusion, ExclusionKind, ExclusionManager, IExclusionManager
from .guard import SingleFlightGuard
from .models import DialogueState, Message, MuteReason, Session, TraceEvent
from .scheduling import (
    AsyncioScheduler,
    IMaintenanceScheduler,
    IScheduler,
    MaintenanceScheduler,
)
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker
from .transport import (
    GatewayTransport,
    InboundEvent,
    InMemoryTransport,
    ITransport,
    TransportAdapter,
)

__all__ = [
    # Application
    "Application",
    "IApplication",
    "EngineSettings",
    # Models
    "DialogueState",
    "MuteReason",
    "Session",
    "Message",
    "TraceEvent",
    # Components
    "IClock",
    "SystemClock",
    "IStorage",
    "Storage",
    "ITracker",
    "Tracker",
    "IScheduler",
    "AsyncioScheduler",
    "IMaintenanceScheduler",
    "MaintenanceScheduler",
    "IExclusionManager",
    "ExclusionManager",
    "Exclusion",
    "ExclusionKind",
    "SingleFlightGuard",
    "IMessageDispatcher",
    "MessageDispatcher",
    "IDialogueStateMachine",
    "DialogueStateMachine",
    "ConversationEngine",
    "InboundOutcome",
    "ContactBusyError",
    "SessionNotFoundError",
    # Transport
    "ITransport",
    "InboundEvent",
    "InMemoryTransport",
    "GatewayTransport",
    "TransportAdapter",
]
