"""Chat session API routes."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Path
from pydantic import BaseModel, Field, field_validator

from ..services.session_service import SessionService


class CreateSessionRequest(BaseModel):
    """Request model for creating a chat session."""
    name: str = Field(..., min_length=1, max_length=200, description="Session name")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class RenameSessionRequest(CreateSessionRequest):
    """Request model for renaming a session."""


class SessionResponse(BaseModel):
    """Response model for a chat session."""
    id: str
    name: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def create_sessions_router(sessions: SessionService) -> APIRouter:
    """Create the chat session router.

    Args:
        sessions: SessionService instance

    Returns:
        Configured APIRouter
    """
    router = APIRouter(prefix="/sessions", tags=["sessions"])

    @router.post("", response_model=SessionResponse, status_code=201)
    async def create_session(request: CreateSessionRequest):
        """Create a new chat session."""
        return await sessions.create(request.name)

    @router.get("", response_model=List[SessionResponse])
    async def list_sessions():
        """List chat sessions, most recent first."""
        return await sessions.list()

    @router.get("/{session_id}", response_model=SessionResponse)
    async def get_session(session_id: str = Path(..., description="Session ID")):
        """Get a chat session.

        Raises:
            SessionNotFoundError: mapped to 404
        """
        return await sessions.get(session_id)

    @router.patch("/{session_id}", response_model=SessionResponse)
    async def rename_session(
        session_id: str = Path(..., description="Session ID"),
        request: RenameSessionRequest = Body(...)
    ) -> Dict[str, Any]:
        """Rename a chat session."""
        return await sessions.rename(session_id, request.name)

    @router.delete("/{session_id}", status_code=204)
    async def delete_session(session_id: str = Path(..., description="Session ID")):
        """Delete a chat session with its resources and conversation."""
        await sessions.delete(session_id)
        return None

    return router
