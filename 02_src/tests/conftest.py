"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from finbot.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def tracker(storage):
    """Create Tracker backed by storage."""
    from finbot.tracker import Tracker

    return Tracker(storage)


@pytest.fixture
def state_store():
    """Create an empty conversation state store."""
    from finbot.state import StateStore

    return StateStore()


@pytest.fixture
def mock_llm():
    """Create mock LLM provider."""
    llm = Mock()
    llm.complete = AsyncMock(return_value="Test response")
    return llm


@pytest.fixture
def responder():
    """Create mock responder with fixed replies."""
    rs = Mock()
    rs.conversational = AsyncMock(return_value="Resposta conversacional")
    rs.spending_advice = AsyncMock(return_value="Dicas de economia")
    rs.research = AsyncMock(return_value="Explicação do tópico")
    return rs


@pytest.fixture
def classifier():
    """Create scripted classifier; tests set classify.return_value per message."""
    from finbot.models import Unknown

    cl = Mock()
    cl.classify = AsyncMock(return_value=Unknown())
    return cl


@pytest.fixture
def slot_filler(state_store, storage):
    """Create SlotFillingController."""
    from finbot.dialogue import SlotFillingController

    return SlotFillingController(state_store, storage)


@pytest.fixture
def dispatcher(state_store, storage, slot_filler, responder, tracker):
    """Create IntentDispatcher with mocked responder."""
    from finbot.dialogue import IntentDispatcher

    return IntentDispatcher(
        state_store=state_store,
        storage=storage,
        slot_filler=slot_filler,
        responder=responder,
        tracker=tracker,
    )


@pytest_asyncio.fixture
async def dialogue_agent(classifier, responder, state_store, dispatcher, tracker):
    """Create started DialogueAgent."""
    from finbot.dialogue import DialogueAgent

    da = DialogueAgent(
        classifier=classifier,
        responder=responder,
        state_store=state_store,
        dispatcher=dispatcher,
        tracker=tracker,
    )
    await da.start()
    yield da
    await da.stop()


@pytest.fixture
def say(dialogue_agent, classifier):
    """Send a message with a scripted classification."""

    async def _say(text, classification, conversation_id="5511999990000", attachment_refs=None):
        classifier.classify.return_value = classification
        return await dialogue_agent.handle_message(
            conversation_id, text, attachment_refs=attachment_refs
        )

    return _say


@pytest.fixture
def make_draft():
    """Build an ExpenseDraft with every required field set."""
    from finbot.models import ExpenseDraft

    def _make(**overrides):
        fields = {
            "value": 25.5,
            "item": "Almoço",
            "payment_method": "Pix",
            "category": "Alimentação",
            "establishment": "Restaurante Central",
        }
        fields.update(overrides)
        return ExpenseDraft(**fields)

    return _make
