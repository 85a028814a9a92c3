"""Application bootstrap and lifecycle management."""

import os
from typing import Protocol

from .clock import IClock, SystemClock
from .config import EngineSettings, resolve_db_path
from .dialogue import DialogueStateMachine
from .dispatch import MessageDispatcher
from .engine import ConversationEngine
from .exclusion import ExclusionManager
from .guard import SingleFlightGuard
from .logging_config import get_logger
from .scheduling import AsyncioScheduler, IScheduler, MaintenanceScheduler
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker
from .transport import GatewayTransport, InMemoryTransport, ITransport, TransportAdapter

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...


class Application:
    """Main application bootstrap.

    Collaborators left as None are built from the environment; tests pass a
    fake clock, a manual scheduler and an in-memory transport instead.
    """

    def __init__(
        self,
        db_path: str | None = None,
        settings: EngineSettings | None = None,
        clock: IClock | None = None,
        scheduler: IScheduler | None = None,
        transport: ITransport | None = None,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._settings = settings or EngineSettings.from_env()
        self._clock = clock or SystemClock()
        self._scheduler = scheduler
        self._transport = transport

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._tracker: ITracker | None = None
        self._engine: ConversationEngine | None = None
        self._maintenance: MaintenanceScheduler | None = None
        self._adapter: TransportAdapter | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. Tracker (depends on Storage)
        self._tracker = Tracker(self._storage, self._clock)

        # 3. Scheduler and transport
        if self._scheduler is None:
            self._scheduler = AsyncioScheduler()
        if self._transport is None:
            self._transport = self._build_transport()

        # 4. Dispatcher, exclusion manager, dialogue
        dispatcher = MessageDispatcher(self._transport, self._storage, self._clock)
        exclusion = ExclusionManager(
            self._storage, self._clock, self._settings, self._tracker
        )
        machine = DialogueStateMachine(
            storage=self._storage,
            dispatcher=dispatcher,
            exclusion=exclusion,
            scheduler=self._scheduler,
            clock=self._clock,
            settings=self._settings,
            tracker=self._tracker,
        )

        # 5. Maintenance and engine share the per-contact guard
        guard = SingleFlightGuard()
        self._maintenance = MaintenanceScheduler(
            self._storage,
            self._scheduler,
            self._clock,
            self._settings,
            self._tracker,
            guard=guard,
        )
        self._engine = ConversationEngine(
            storage=self._storage,
            dispatcher=dispatcher,
            exclusion=exclusion,
            machine=machine,
            guard=guard,
            clock=self._clock,
            maintenance=self._maintenance,
            tracker=self._tracker,
        )

        # 6. Transport adapter; maintenance starts once the transport is ready
        self._adapter = TransportAdapter(self._transport, self._engine, self._clock)
        self._adapter.add_ready_listener(self._maintenance.start)
        if isinstance(self._transport, InMemoryTransport):
            self._adapter.on_ready()

        logger.info("All components initialized successfully")

    def _build_transport(self) -> ITransport:
        if self._settings.gateway_url:
            logger.info("Using messaging gateway at %s", self._settings.gateway_url)
            return GatewayTransport(
                self._settings.gateway_url, token=self._settings.gateway_token
            )
        logger.warning("No TRANSPORT_GATEWAY_URL set, outbound messages stay in memory")
        return InMemoryTransport()

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._maintenance:
            self._maintenance.stop()
        if self._scheduler:
            await self._scheduler.shutdown()
        if self._transport:
            await self._transport.close()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def tracker(self) -> ITracker:
        if not self._tracker:
            raise RuntimeError("Application not started")
        return self._tracker

    @property
    def engine(self) -> ConversationEngine:
        """Get conversation engine instance."""
        if not self._engine:
            raise RuntimeError("Application not started")
        return self._engine

    @property
    def maintenance(self) -> MaintenanceScheduler:
        if not self._maintenance:
            raise RuntimeError("Application not started")
        return self._maintenance

    @property
    def adapter(self) -> TransportAdapter:
        """Get transport adapter instance."""
        if not self._adapter:
            raise RuntimeError("Application not started")
        return self._adapter

    @property
    def transport(self) -> ITransport:
        if not self._transport:
            raise RuntimeError("Application not started")
        return self._transport
