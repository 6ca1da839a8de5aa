"""LLM module."""

from .classifier import IIntentClassifier, IntentClassifier
from .llm_provider import ILLMProvider, LLMProvider
from .responder import IResponder, Responder

__all__ = [
    "IIntentClassifier",
    "IntentClassifier",
    "ILLMProvider",
    "LLMProvider",
    "IResponder",
    "Responder",
]
