"""Conversation state module."""

from .store import IStateStore, StateStore

__all__ = ["IStateStore", "StateStore"]
