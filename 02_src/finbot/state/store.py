"""In-memory conversation state store."""

import copy
import dataclasses
from datetime import datetime
from typing import Any, Protocol

from ..logging_config import get_logger
from ..models import ConversationState

logger = get_logger(__name__)

_CLEARED = {
    field.name: field.default for field in dataclasses.fields(ConversationState)
}


class IStateStore(Protocol):
    """Keyed mapping from conversation id to ConversationState."""

    def get(self, conversation_id: str) -> ConversationState | None:
        """Get a snapshot of the state, or None if absent."""
        ...

    def set(self, conversation_id: str, state: ConversationState | None) -> None:
        """Replace the state; None deletes it."""
        ...

    def merge(self, conversation_id: str, **updates: Any) -> ConversationState:
        """Create if absent, then shallow-merge the given fields."""
        ...

    def clear_field(self, conversation_id: str, field_name: str) -> None:
        """Reset one field to its default."""
        ...

    def get_last_activity(self, conversation_id: str) -> datetime | None:
        """Timestamp of the last inbound message, or None."""
        ...

    def touch_activity(self, conversation_id: str, timestamp: datetime) -> None:
        """Record the timestamp of an inbound message."""
        ...


class StateStore:
    """Per-instance state store.

    Snapshots returned by ``get`` are copies, so state only changes through
    ``set``, ``merge`` and ``clear_field``.
    """

    def __init__(self) -> None:
        self._states: dict[str, ConversationState] = {}
        self._last_activity: dict[str, datetime] = {}

    def get(self, conversation_id: str) -> ConversationState | None:
        state = self._states.get(conversation_id)
        return copy.deepcopy(state) if state is not None else None

    def set(self, conversation_id: str, state: ConversationState | None) -> None:
        if state is None:
            if self._states.pop(conversation_id, None) is not None:
                logger.debug("[%s] State removed", conversation_id)
            return
        self._states[conversation_id] = copy.deepcopy(state)

    def merge(self, conversation_id: str, **updates: Any) -> ConversationState:
        unknown = set(updates) - set(_CLEARED)
        if unknown:
            raise ValueError(f"Unknown state fields: {sorted(unknown)}")

        current = self._states.get(conversation_id) or ConversationState()
        merged = dataclasses.replace(current, **copy.deepcopy(updates))
        self._states[conversation_id] = merged
        return copy.deepcopy(merged)

    def clear_field(self, conversation_id: str, field_name: str) -> None:
        if field_name not in _CLEARED:
            raise ValueError(f"Unknown state field: {field_name}")
        state = self._states.get(conversation_id)
        if state is not None:
            setattr(state, field_name, _CLEARED[field_name])

    def get_last_activity(self, conversation_id: str) -> datetime | None:
        return self._last_activity.get(conversation_id)

    def touch_activity(self, conversation_id: str, timestamp: datetime) -> None:
        self._last_activity[conversation_id] = timestamp

    def clear(self) -> None:
        """Drop every conversation (used by application reset)."""
        self._states.clear()
        self._last_activity.clear()
