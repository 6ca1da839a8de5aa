"""FinanceBot: conversational expense tracking."""

from .app import Application, IApplication
from .dialogue import DialogueAgent, IDialogueAgent, IntentDispatcher, SlotFillingController
from .llm import IIntentClassifier, ILLMProvider, IntentClassifier, IResponder, LLMProvider, Responder
from .media import IMediaStore, MediaStore
from .models import (
    Classification,
    ConversationState,
    Expense,
    ExpenseDraft,
    ImageDirective,
    Intent,
    Reply,
    TraceEvent,
    WaitingFor,
)
from .state import IStateStore, StateStore
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Models
    "Classification",
    "ConversationState",
    "Expense",
    "ExpenseDraft",
    "ImageDirective",
    "Intent",
    "Reply",
    "TraceEvent",
    "WaitingFor",
    # Components
    "IStorage",
    "Storage",
    "ITracker",
    "Tracker",
    "IStateStore",
    "StateStore",
    "IMediaStore",
    "MediaStore",
    "ILLMProvider",
    "LLMProvider",
    "IIntentClassifier",
    "IntentClassifier",
    "IResponder",
    "Responder",
    "IDialogueAgent",
    "DialogueAgent",
    "IntentDispatcher",
    "SlotFillingController",
]
