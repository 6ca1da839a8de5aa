"""SIM implementation - scripted finance conversations for manual testing."""

import asyncio
import random
from typing import Protocol

import httpx

from finbot.logging_config import get_logger
from finbot.tracker import ITracker

logger = get_logger(__name__)

SCENARIO_NAME = "finance_basics"

# Each conversation is replayed in order; conversations are interleaved
SCRIPTS = {
    "5511900000001": [
        "Oi!",
        "Gastei 45,90 no almoço",
        "Pix",
        "Restaurante da esquina",
        "não",
        "Quero ver o relatório de hoje",
    ],
    "5511900000002": [
        "Paguei 120 reais de luz no débito",
        "Companhia elétrica",
        "sim",
        "Conta de março",
        "Me dá umas dicas para economizar",
    ],
    "5511900000003": [
        "O que é CDI?",
        "Explique de forma mais simples",
        "Registrar gasto de 30 reais",
        "cancela",
    ],
}


class ISim(Protocol):
    """Generate test traffic against the HTTP API."""

    async def start(self) -> None:
        """Start scripted scenario."""
        ...

    async def stop(self) -> None:
        """Stop scenario."""
        ...


class Sim:
    """SIM with a scripted finance scenario."""

    def __init__(
        self,
        api_url: str = "http://localhost:8000",
        tracker: ITracker | None = None,
        scripts: dict[str, list[str]] | None = None,
        delay_range: tuple[float, float] = (1.0, 3.0),
    ):
        self._api_url = api_url
        self._tracker = tracker
        self._scripts = scripts if scripts is not None else SCRIPTS
        self._delay_range = delay_range
        self._running = False
        self._task: asyncio.Task | None = None
        self._client: httpx.AsyncClient | None = None

    def set_tracker(self, tracker: ITracker) -> None:
        """Inject tracker for SIM trace events."""
        self._tracker = tracker

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start scripted scenario."""
        if self._running:
            return

        self._running = True
        self._client = httpx.AsyncClient()
        self._task = asyncio.create_task(self._run_scenario())

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

        if self._client:
            await self._client.aclose()
            self._client = None

    def _summary(self) -> dict:
        return {
            "scenario": SCENARIO_NAME,
            "conversation_count": len(self._scripts),
            "message_count": sum(len(m) for m in self._scripts.values()),
        }

    async def _run_scenario(self) -> None:
        """Replay every script, one message per conversation per round."""
        rounds = max((len(m) for m in self._scripts.values()), default=0)

        try:
            if self._tracker:
                await self._tracker.track("sim_started", "sim", self._summary())

            for i in range(rounds):
                if not self._running:
                    break

                for conversation_id, messages in self._scripts.items():
                    if not self._running:
                        break
                    if i < len(messages):
                        await self._send_message(conversation_id, messages[i])
                        await asyncio.sleep(random.uniform(*self._delay_range))

        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("SIM scenario error: %s", e)
        finally:
            self._running = False
            if self._tracker:
                await self._tracker.track("sim_completed", "sim", self._summary())

    async def _send_message(self, conversation_id: str, text: str) -> None:
        """Send a message via HTTP API."""
        if not self._client:
            return

        try:
            response = await self._client.post(
                f"{self._api_url}/api/messages",
                json={"conversation_id": conversation_id, "text": text},
                timeout=30.0,
            )
        except httpx.HTTPError as e:
            logger.error("SIM: Failed to send message: %s", e)
            return

        if response.status_code != 200:
            logger.error("SIM: Error sending message: %s", response.status_code)
            return

        logger.info("SIM: %s -> %s", conversation_id, text)
        for part in response.json().get("replies", []):
            if part.get("type") == "image":
                logger.info("SIM: Image reply: %s", part.get("ref"))
            else:
                logger.info("SIM: Reply: %s", part.get("text"))
