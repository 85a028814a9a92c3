"""SIM implementation - scripted contacts walking through the intake flow."""

import asyncio
import random
from typing import Protocol

import httpx

from intake.logging_config import get_logger
from intake.tracker import ITracker

logger = get_logger(__name__)

# Each contact's script, sent one line per round. Raw gateway ids, as the
# messaging gateway would forward them.
SCRIPTS: dict[str, list[str]] = {
    "5511900000001@c.us": ["Oi", "Maria", "1", "5000 kWh", "Sem preferência"],
    "5511900000002@c.us": ["Bom dia", "João", "2", "80 metros", "3000 L/h", "Solar"],
    "5511900000003@c.us": ["Olá", "Ana", "7", "6"],
    "5511900000004@c.us": ["Oi", "stop", "oi"],
    "120363000000000001@g.us": ["Mensagem do grupo"],
}


class ISim(Protocol):
    """Generate test traffic against the inbound webhook."""

    async def start(self) -> None:
        """Start the scripted scenario."""
        ...

    async def stop(self) -> None:
        """Stop scenario."""
        ...


class Sim:
    """Drives the HTTP inbound endpoint with a few scripted contacts."""

    def __init__(
        self,
        api_url: str = "http://localhost:8000",
        tracker: ITracker | None = None,
        scripts: dict[str, list[str]] | None = None,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_url = api_url
        self._tracker = tracker
        self._scripts = scripts or SCRIPTS
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._running = False
        self._task: asyncio.Task | None = None
        self._client = client
        self._owns_client = client is None

    @property
    def running(self) -> bool:
        return self._running

    def set_tracker(self, tracker: ITracker) -> None:
        """Inject tracker for SIM trace events."""
        self._tracker = tracker

    async def start(self) -> None:
        """Start the scripted scenario."""
        if self._running:
            return

        self._running = True
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._api_url, timeout=10.0)
        self._task = asyncio.create_task(self._run_scenario())

    async def wait(self) -> None:
        """Block until the running scenario finishes."""
        if self._task:
            await self._task

    async def stop(self) -> None:
        """Stop scenario."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _run_scenario(self) -> None:
        message_count = sum(len(lines) for lines in self._scripts.values())
        details = {
            "scenario": "scripted",
            "contact_count": len(self._scripts),
            "message_count": message_count,
        }

        try:
            if self._tracker:
                await self._tracker.track("sim_started", "sim", details)

            rounds = max(len(lines) for lines in self._scripts.values())
            for i in range(rounds):
                if not self._running:
                    break

                for sender_id, lines in self._scripts.items():
                    if not self._running:
                        break
                    if i < len(lines):
                        await self._send_message(sender_id, lines[i])
                        await asyncio.sleep(random.uniform(self._min_delay, self._max_delay))

        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("SIM scenario error: %s", e)
        finally:
            self._running = False
            if self._tracker:
                await self._tracker.track("sim_completed", "sim", details)

    async def _send_message(self, sender_id: str, text: str) -> None:
        """Post one inbound message to the webhook."""
        if not self._client:
            return

        try:
            response = await self._client.post(
                "/api/inbound",
                json={"sender_id": sender_id, "text": text},
            )

            if response.status_code == 200:
                logger.info(
                    "SIM: %s -> %s (%s)", sender_id, text, response.json().get("outcome")
                )
            else:
                logger.error("SIM: Error sending message: %s", response.status_code)

        except httpx.HTTPError as e:
            logger.error("SIM: Failed to send message: %s", e)
