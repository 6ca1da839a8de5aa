"""Tracing and observability data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A single observability event for one dialogue step."""

    id: str
    event_type: str  # e.g. "message_received", "expense_registered"
    actor: str  # component that recorded it
    data: dict  # self-contained payload for display
    timestamp: datetime
