"""Pytest configuration and fixtures."""

import heapq
import itertools
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from intake.config import EngineSettings
from intake.dispatch import BOT_MARKER
from intake.scheduling import ScheduledCall
from intake.transport import InMemoryTransport, to_chat_id

START = datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta | float) -> None:
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        self.current += delta

    def set(self, value: datetime) -> None:
        self.current = value


class ManualScheduler:
    """IScheduler on virtual time: callbacks run only inside advance()."""

    def __init__(self, clock: FakeClock):
        self._clock = clock
        self._queue: list = []
        self._seq = itertools.count()

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def call_later(self, delay, callback) -> ScheduledCall:
        handle = ScheduledCall(delay)
        due = self._clock.now() + timedelta(seconds=max(delay, 0))
        heapq.heappush(self._queue, (due, next(self._seq), handle, callback))
        return handle

    def next_due(self) -> datetime | None:
        live = [due for due, _, handle, _ in self._queue if not handle.cancelled]
        return min(live) if live else None

    async def advance(self, delta: timedelta | float = 0) -> int:
        """Move virtual time forward, running every callback that falls due."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        target = self._clock.now() + delta
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            if due > self._clock.now():
                self._clock.set(due)
            await callback()
            ran += 1
        self._clock.set(target)
        return ran

    async def shutdown(self) -> None:
        for _, _, handle, _ in self._queue:
            handle.cancel()
        self._queue.clear()


class FailingTransport(InMemoryTransport):
    """Ready transport whose sends always fail."""

    async def send(self, chat_id: str, text: str) -> None:
        raise RuntimeError("gateway unreachable")


def sent_texts(transport: InMemoryTransport, contact_id: str) -> list[str]:
    """Texts delivered to one contact, without the bot marker."""
    chat_id = to_chat_id(contact_id)
    return [
        m.text.removesuffix(BOT_MARKER) for m in transport.sent if m.chat_id == chat_id
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def settings():
    return EngineSettings(reset_timezone="UTC")


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from intake.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def tracker(storage, clock):
    from intake.tracker import Tracker

    return Tracker(storage, clock)


@pytest.fixture
def transport():
    tr = InMemoryTransport()
    tr.status.ready = True
    return tr


@pytest.fixture
def dispatcher(transport, storage, clock):
    from intake.dispatch import MessageDispatcher

    return MessageDispatcher(transport, storage, clock)


@pytest.fixture
def exclusion(storage, clock, settings, tracker):
    from intake.exclusion import ExclusionManager

    return ExclusionManager(storage, clock, settings, tracker)


@pytest.fixture
def machine(storage, dispatcher, exclusion, scheduler, clock, settings, tracker):
    from intake.dialogue import DialogueStateMachine

    return DialogueStateMachine(
        storage=storage,
        dispatcher=dispatcher,
        exclusion=exclusion,
        scheduler=scheduler,
        clock=clock,
        settings=settings,
        tracker=tracker,
    )


@pytest.fixture
def guard():
    from intake.guard import SingleFlightGuard

    return SingleFlightGuard()


@pytest.fixture
def maintenance(storage, scheduler, clock, settings, tracker, guard):
    from intake.scheduling import MaintenanceScheduler

    return MaintenanceScheduler(storage, scheduler, clock, settings, tracker, guard=guard)


@pytest.fixture
def engine(storage, dispatcher, exclusion, machine, guard, clock, maintenance, tracker):
    from intake.engine import ConversationEngine

    return ConversationEngine(
        storage=storage,
        dispatcher=dispatcher,
        exclusion=exclusion,
        machine=machine,
        guard=guard,
        clock=clock,
        maintenance=maintenance,
        tracker=tracker,
    )
