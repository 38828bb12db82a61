"""FastAPI routes for CSV resources attached to a session."""

from typing import List, Optional

from fastapi import APIRouter, Body, File, HTTPException, Path, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from ..services.resource_service import ResourceService
from ..services.session_service import SessionService


class ResourceFromUrlRequest(BaseModel):
    """Request model for attaching a CSV by URL."""
    url: str = Field(..., min_length=1, description="HTTP(S) URL of the CSV file")


class ResourceResponse(BaseModel):
    """Response model for a CSV resource."""
    id: str
    session_id: str
    original_name: str
    stored_path: str
    mime_type: str
    size_bytes: int
    created_at: Optional[str] = None


def create_resources_router(sessions: SessionService, resources: ResourceService) -> APIRouter:
    """Create router for resource-related endpoints.

    Args:
        sessions: SessionService used to check that the session exists
        resources: ResourceService instance

    Returns:
        Configured APIRouter
    """
    router = APIRouter(prefix="/sessions/{session_id}/resources", tags=["resources"])

    @router.get("", response_model=List[ResourceResponse])
    async def list_resources(session_id: str = Path(..., description="Session ID")):
        """List the session's resources, newest first."""
        await sessions.get(session_id)
        return await resources.list_by_session(session_id)

    @router.post("", response_model=ResourceResponse, status_code=201)
    async def upload_resource(
        session_id: str = Path(..., description="Session ID"),
        file: UploadFile = File(...)
    ):
        """Upload a CSV file to the session.

        Raises:
            ResourceTooLargeError: mapped to 413
            ResourceValidationError: mapped to 400
        """
        await sessions.get(session_id)
        data = await file.read()
        if not data:
            raise HTTPException(status_code=400, detail="Uploaded file is empty")
        return await resources.create_from_upload(session_id, file.filename, file.content_type, data)

    @router.post("/url", response_model=ResourceResponse, status_code=201)
    async def create_resource_from_url(
        session_id: str = Path(..., description="Session ID"),
        request: ResourceFromUrlRequest = Body(...)
    ):
        """Fetch a CSV file from a URL and attach it to the session."""
        await sessions.get(session_id)
        return await resources.create_from_url(session_id, request.url)

    @router.get("/{resource_id}", response_model=ResourceResponse)
    async def get_resource(
        session_id: str = Path(..., description="Session ID"),
        resource_id: str = Path(..., description="Resource ID")
    ):
        """Get a resource of the session."""
        return await resources.get(session_id, resource_id)

    @router.delete("/{resource_id}", status_code=204)
    async def delete_resource(
        session_id: str = Path(..., description="Session ID"),
        resource_id: str = Path(..., description="Resource ID")
    ):
        """Delete a resource's file and record."""
        await resources.delete(session_id, resource_id)
        return None

    @router.get("/{resource_id}/download")
    async def download_resource(
        session_id: str = Path(..., description="Session ID"),
        resource_id: str = Path(..., description="Resource ID")
    ):
        """Download the stored file of a resource."""
        record = await resources.get(session_id, resource_id)
        path = resources.file_path(record)
        if not path.is_file():
            raise HTTPException(status_code=404, detail="File not found on disk")
        return FileResponse(
            path,
            media_type=record.get("mime_type") or "text/csv",
            filename=record["original_name"]
        )

    return router
