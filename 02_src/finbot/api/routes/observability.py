"""Observability API routes."""

import dataclasses
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import IApplication


class TraceEventResponse(BaseModel):
    """Response model for trace event."""

    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


class ConversationStateResponse(BaseModel):
    """Snapshot of one conversation's dialogue state."""

    conversation_id: str
    waiting_for: str
    temp_data: dict[str, Any] | None = None
    last_research_topic: str | None = None
    last_activity: datetime | None = None


def create_observability_router(app: IApplication) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: str | None = Query(None, description="ISO timestamp filter"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: str | None = Query(None, description="Filter by event type"),
        actor: str | None = Query(None, description="Filter by actor"),
    ) -> list[dict]:
        """Get trace events with optional filters."""
        after_dt = None
        if after:
            try:
                after_dt = datetime.fromisoformat(after)
            except ValueError:
                raise HTTPException(
                    status_code=400, detail="Invalid after timestamp format"
                )

        try:
            events = await app.storage.get_trace_events(
                after=after_dt,
                event_types=[event_type] if event_type else None,
                actor=actor,
                limit=limit,
            )
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return [
            {
                "id": e.id,
                "event_type": e.event_type,
                "actor": e.actor,
                "data": e.data,
                "timestamp": e.timestamp.isoformat(),
            }
            for e in events
        ]

    @router.get(
        "/conversations/{conversation_id}/state",
        response_model=ConversationStateResponse,
    )
    async def get_conversation_state(conversation_id: str) -> dict:
        """Current dialogue state; an unknown conversation reads as idle."""
        store = app.state_store
        state = store.get(conversation_id)
        return {
            "conversation_id": conversation_id,
            "waiting_for": state.waiting_for.value if state else "none",
            "temp_data": (
                dataclasses.asdict(state.temp_data)
                if state and state.temp_data
                else None
            ),
            "last_research_topic": state.last_research_topic if state else None,
            "last_activity": store.get_last_activity(conversation_id),
        }

    return router
