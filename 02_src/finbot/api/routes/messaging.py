"""Messaging API routes."""

import base64
import binascii
from typing import Literal

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from ...app import IApplication
from ...logging_config import get_logger
from ...models import ImageDirective, Reply

logger = get_logger(__name__)


class AttachmentPayload(BaseModel):
    """Inbound attachment, base64 encoded."""

    mimetype: str
    data: str


class MessageRequest(BaseModel):
    """Request model for sending a message."""

    conversation_id: str = Field(min_length=1)
    text: str = ""
    attachments: list[AttachmentPayload] = Field(default_factory=list)


class ReplyPart(BaseModel):
    """One outbound text or image."""

    type: Literal["text", "image"]
    text: str | None = None
    ref: str | None = None


class MessageResponse(BaseModel):
    """Response model for message."""

    replies: list[ReplyPart]


def serialize_reply(reply: Reply) -> list[dict]:
    """Flatten a dialogue reply into transport parts."""
    if reply is None:
        return []
    parts = [reply] if isinstance(reply, str) else reply
    serialized = []
    for part in parts:
        if isinstance(part, ImageDirective):
            serialized.append({"type": "image", "ref": part.ref})
        else:
            serialized.append({"type": "text", "text": part})
    return serialized


def create_messaging_router(app: IApplication) -> APIRouter:
    """Create messaging router."""
    router = APIRouter(prefix="/api", tags=["messaging"])

    @router.post("/messages", response_model=MessageResponse, response_model_exclude_none=True)
    async def send_message(request: MessageRequest) -> dict:
        """Send a message to the dialogue agent."""
        payloads = []
        for attachment in request.attachments:
            try:
                payloads.append(
                    (base64.b64decode(attachment.data, validate=True), attachment.mimetype)
                )
            except (binascii.Error, ValueError):
                raise HTTPException(status_code=400, detail="Invalid attachment encoding")

        try:
            refs = []
            for data, mimetype in payloads:
                ref = await app.media.save(data, mimetype)
                if ref:
                    refs.append(ref)

            reply = await app.dialogue_agent.handle_message(
                conversation_id=request.conversation_id,
                text=request.text,
                attachment_refs=refs,
            )
            return {"replies": serialize_reply(reply)}
        except Exception as e:
            logger.error("Message handling failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    return router
