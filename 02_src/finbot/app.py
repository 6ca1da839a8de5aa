"""Application bootstrap and lifecycle management."""

import os
from pathlib import Path
from typing import Protocol

from .config import resolve_db_path
from .dialogue import DialogueAgent, IDialogueAgent, IntentDispatcher, SlotFillingController
from .llm import (
    IIntentClassifier,
    ILLMProvider,
    IntentClassifier,
    IResponder,
    LLMProvider,
    Responder,
)
from .logging_config import get_logger
from .media import IMediaStore, MediaStore
from .state import StateStore
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

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
    """Main application bootstrap."""

    def __init__(
        self,
        db_path: str | None = None,
        llm_provider: ILLMProvider | None = None,
        attachments_dir: str | Path | None = None,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._attachments_dir = attachments_dir

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._tracker: ITracker | None = None
        self._llm: ILLMProvider | None = llm_provider
        self._classifier: IIntentClassifier | None = None
        self._responder: IResponder | None = None
        self._state_store: StateStore | None = None
        self._media: IMediaStore | None = None
        self._dialogue_agent: IDialogueAgent | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. Tracker (depends on Storage)
        self._tracker = Tracker(self._storage)

        # 3. LLMProvider (no internal dependencies)
        if self._llm is None:
            self._llm = LLMProvider()
        logger.info("LLM provider initialized")

        # 4. Classifier and responder (depend on LLM)
        self._classifier = IntentClassifier(self._llm)
        self._responder = Responder(self._llm)

        # 5. Conversation state and attachments
        self._state_store = StateStore()
        self._media = MediaStore(self._attachments_dir)

        # 6. Dialogue flow (depends on everything above)
        slot_filler = SlotFillingController(self._state_store, self._storage)
        dispatcher = IntentDispatcher(
            state_store=self._state_store,
            storage=self._storage,
            slot_filler=slot_filler,
            responder=self._responder,
            tracker=self._tracker,
        )
        self._dialogue_agent = DialogueAgent(
            classifier=self._classifier,
            responder=self._responder,
            state_store=self._state_store,
            dispatcher=dispatcher,
            tracker=self._tracker,
        )
        await self._dialogue_agent.start()
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._dialogue_agent:
            await self._dialogue_agent.stop()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        if self._dialogue_agent:
            await self._dialogue_agent.stop()

        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")
        if self._state_store:
            self._state_store.clear()

        if self._dialogue_agent:
            await self._dialogue_agent.start()
        logger.info("Reset complete")

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def tracker(self) -> ITracker:
        """Get tracker instance."""
        if not self._tracker:
            raise RuntimeError("Application not started")
        return self._tracker

    @property
    def state_store(self) -> StateStore:
        """Get conversation state store."""
        if not self._state_store:
            raise RuntimeError("Application not started")
        return self._state_store

    @property
    def media(self) -> IMediaStore:
        """Get attachment store."""
        if not self._media:
            raise RuntimeError("Application not started")
        return self._media

    @property
    def dialogue_agent(self) -> IDialogueAgent:
        """Get dialogue agent instance."""
        if not self._dialogue_agent:
            raise RuntimeError("Application not started")
        return self._dialogue_agent
