"""DialogueAgent implementation."""

import asyncio
from datetime import datetime, timezone
from typing import Protocol

from ..config import IDLE_THRESHOLD
from ..llm import IIntentClassifier, IResponder
from ..logging_config import get_logger
from ..models import Intent, Reply, Unknown, WaitingFor, reply_text
from ..state import IStateStore
from ..tracker import ITracker
from .dispatcher import IntentDispatcher, Turn

logger = get_logger(__name__)

GENERIC_FAILURE_REPLY = (
    "🤯 Oops! Ocorreu um erro inesperado ao processar sua mensagem. "
    "Por favor, tente novamente."
)

# Pending questions answered from the raw text, so they can progress even
# when classification fails
_RAW_TEXT_STATES = (WaitingFor.NOTES, WaitingFor.RECEIPT_DISAMBIGUATION)


class IDialogueAgent(Protocol):
    """Entry point for every inbound message."""

    async def handle_message(
        self,
        conversation_id: str,
        text: str,
        attachment_refs: list[str] | None = None,
    ) -> Reply:
        """Classify and dispatch one message. Returns the reply to send."""
        ...

    async def start(self) -> None:
        """Start accepting messages."""
        ...

    async def stop(self) -> None:
        """Stop accepting messages."""
        ...


class DialogueAgent:
    """Serializes messages per conversation and runs them through the dispatcher."""

    def __init__(
        self,
        classifier: IIntentClassifier,
        responder: IResponder,
        state_store: IStateStore,
        dispatcher: IntentDispatcher,
        tracker: ITracker,
    ):
        self._classifier = classifier
        self._responder = responder
        self._states = state_store
        self._dispatcher = dispatcher
        self._tracker = tracker

        self._locks: dict[str, asyncio.Lock] = {}
        self._running = False

    async def start(self) -> None:
        logger.info("Starting DialogueAgent")
        self._running = True

    async def stop(self) -> None:
        logger.info("Stopping DialogueAgent")
        self._running = False

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    async def handle_message(
        self,
        conversation_id: str,
        text: str,
        attachment_refs: list[str] | None = None,
    ) -> Reply:
        """Handle one inbound message.

        Messages for the same conversation are processed one at a time, in
        arrival order. A message arriving after a long pause starts a fresh
        conversation. Nothing raised while dispatching reaches the caller:
        the state is cleared and a generic apology is returned instead.
        """
        if not self._running:
            raise RuntimeError("DialogueAgent not started")

        text = (text or "").strip()
        attachment_refs = list(attachment_refs or [])
        if not text and not attachment_refs:
            logger.debug("[%s] Empty message ignored", conversation_id)
            return None

        async with self._lock_for(conversation_id):
            return await self._handle_locked(conversation_id, text, attachment_refs)

    async def _handle_locked(
        self, conversation_id: str, text: str, attachment_refs: list[str]
    ) -> Reply:
        now = datetime.now(timezone.utc)
        last_activity = self._states.get_last_activity(conversation_id)
        is_new = last_activity is None or now - last_activity > IDLE_THRESHOLD
        self._states.touch_activity(conversation_id, now)

        logger.info("[%s] Message received: %s", conversation_id, text[:100])

        if is_new:
            self._states.set(conversation_id, None)
            if last_activity is not None:
                await self._tracker.track(
                    event_type="conversation_reset",
                    actor="dialogue_agent",
                    data={
                        "conversation_id": conversation_id,
                        "idle_seconds": int((now - last_activity).total_seconds()),
                    },
                )

        await self._tracker.track(
            event_type="message_received",
            actor="dialogue_agent",
            data={
                "conversation_id": conversation_id,
                "message_text": text,
                "attachments": len(attachment_refs),
            },
        )

        try:
            reply = await self._respond(conversation_id, text, attachment_refs, is_new)
        except Exception as e:
            logger.error(
                "[%s] Dispatch failed: %s", conversation_id, e, exc_info=True
            )
            self._states.set(conversation_id, None)
            reply = GENERIC_FAILURE_REPLY
            await self._tracker.track(
                event_type="dispatch_failed",
                actor="dialogue_agent",
                data={"conversation_id": conversation_id, "error": str(e)},
            )

        await self._tracker.track(
            event_type="message_responded",
            actor="dialogue_agent",
            data={
                "conversation_id": conversation_id,
                "response_text": reply_text(reply),
                "parts": 0 if reply is None else 1 if isinstance(reply, str) else len(reply),
            },
        )
        return reply

    async def _respond(
        self,
        conversation_id: str,
        text: str,
        attachment_refs: list[str],
        is_new: bool,
    ) -> Reply:
        state = self._states.get(conversation_id)
        classification = await self._classifier.classify(text, state)

        await self._tracker.track(
            event_type="message_classified",
            actor="dialogue_agent",
            data={
                "conversation_id": conversation_id,
                "intent": classification.intent.value,
                "waiting_for": state.waiting_for.value if state else None,
            },
        )

        if isinstance(classification, Unknown) and classification.error:
            pending = state.waiting_for if state else WaitingFor.NONE
            if pending not in _RAW_TEXT_STATES:
                logger.warning(
                    "[%s] Classification failed: %s",
                    conversation_id,
                    classification.error,
                )
                return await self._responder.conversational(
                    text, Intent.UNKNOWN, is_new
                )

        turn = Turn(
            conversation_id=conversation_id,
            text=text,
            classification=classification,
            attachment_refs=attachment_refs,
            is_new_conversation=is_new,
        )
        return await self._dispatcher.dispatch(turn)
