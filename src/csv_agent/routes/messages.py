"""Conversation routes: message listing and the streaming agent endpoint."""

import base64
import binascii
from typing import Any, AsyncIterator, Dict, List, Literal, Optional

from fastapi import APIRouter, Body, Path
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, field_validator, model_validator

from ..agent.models import ImageAttachment
from ..agent.service import SSE_DONE, AgentService, StreamEvent
from ..services.session_service import SessionService

MAX_IMAGES = 10
MAX_IMAGE_BYTES = 4 * 1024 * 1024
MAX_TOTAL_IMAGE_BYTES = 20 * 1024 * 1024


class ImagePayload(BaseModel):
    """A base64-encoded image sent with a message."""
    data: str = Field(..., min_length=1)
    mime_type: Literal["image/jpeg", "image/png", "image/webp", "image/gif"]
    original_name: str = Field("image", min_length=1, max_length=255)

    @field_validator('data')
    @classmethod
    def validate_data(cls, v: str) -> str:
        """Accept plain base64 or a data URL, and enforce the per-image limit."""
        if v.startswith("data:") and "," in v:
            v = v.split(",", 1)[1]
        v = "".join(v.split())
        try:
            decoded = base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Image data must be valid base64")
        if len(decoded) > MAX_IMAGE_BYTES:
            raise ValueError("Image exceeds 4MB")
        return v

    @property
    def decoded_size(self) -> int:
        return len(base64.b64decode(self.data))

    def to_attachment(self) -> ImageAttachment:
        return ImageAttachment(data=self.data, media_type=self.mime_type)


class StreamMessageRequest(BaseModel):
    """Request model for sending a message to the agent."""
    content: str = ""
    images: List[ImagePayload] = Field(default_factory=list, max_length=MAX_IMAGES)

    @model_validator(mode='after')
    def validate_message(self) -> "StreamMessageRequest":
        if not self.content.strip() and not self.images:
            raise ValueError("Either message content or images must be provided")
        if sum(image.decoded_size for image in self.images) > MAX_TOTAL_IMAGE_BYTES:
            raise ValueError("Images exceed 20MB total per message")
        return self


class MessageResponse(BaseModel):
    """Response model for a displayed chat message."""
    id: str
    session_id: str
    role: str
    content: str
    metadata: Optional[Dict[str, Any]] = None


async def _sse(events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    failed = False
    async for event in events:
        failed = failed or event.error is not None
        yield event.to_sse()
    if not failed:
        yield SSE_DONE


def create_messages_router(sessions: SessionService, agent: AgentService) -> APIRouter:
    """Create the conversation router.

    Args:
        sessions: SessionService used to render the message history
        agent: AgentService driving the streaming endpoint

    Returns:
        Configured APIRouter
    """
    router = APIRouter(prefix="/sessions/{session_id}/messages", tags=["messages"])

    @router.get("", response_model=List[MessageResponse])
    async def list_messages(session_id: str = Path(..., description="Session ID")):
        """List the user messages and final assistant answers of a session."""
        return await sessions.list_messages(session_id)

    @router.post("/stream")
    async def stream_message(
        session_id: str = Path(..., description="Session ID"),
        request: StreamMessageRequest = Body(...)
    ):
        """Stream the agent's answer as Server-Sent Events.

        Each fragment is sent as ``data: {"content": ...}``; the stream ends
        with ``data: [DONE]``, or with a single ``data: {"error": ...}`` if
        the execution fails. A missing session is a 404 before the stream
        opens.
        """
        events = await agent.stream_agent(
            session_id,
            request.content,
            [image.to_attachment() for image in request.images]
        )
        return StreamingResponse(
            _sse(events),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
        )

    return router
