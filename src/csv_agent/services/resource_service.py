"""CSV resources attached to chat sessions: upload, URL ingestion, listing and deletion."""

import asyncio
import logging
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

import httpx

from ..analysis.models import CsvResource
from ..core.exceptions import (
    ResourceNotFoundError,
    ResourceTooLargeError,
    ResourceValidationError,
)
from ..core.storage import DiskStorage
from ..core.supabase_client import SupabaseStore

logger = logging.getLogger(__name__)

ALLOWED_CSV_MIME_TYPES = (
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "text/plain",
)
DEFAULT_MIME_TYPE = "text/csv"
MAX_NAME_LENGTH = 255


def normalize_mime_type(content_type: Optional[str]) -> str:
    """Strip parameters and fall back to text/csv for anything not accepted."""
    mime = (content_type or "").split(";")[0].strip().lower()
    return mime if mime in ALLOWED_CSV_MIME_TYPES else DEFAULT_MIME_TYPE


def filename_from_url(url: str) -> str:
    """Derive a ``.csv`` filename from the last path segment of ``url``."""
    name = unquote(PurePosixPath(urlparse(url).path).name)
    if not name:
        return "download.csv"
    if name.lower().endswith(".csv"):
        return name
    stem = name.split(".")[0]
    return f"{stem or 'download'}.csv"


def to_csv_resource(record: Dict[str, Any]) -> CsvResource:
    return CsvResource(
        id=str(record["id"]),
        original_name=record["original_name"],
        stored_path=record["stored_path"],
        size_bytes=int(record.get("size_bytes") or 0),
        mime_type=record.get("mime_type") or DEFAULT_MIME_TYPE,
    )


class ResourceService:
    """Creates, lists and deletes the CSV resources of a session.

    Args:
        store: Supabase store holding resource records
        storage: Disk storage holding the files
        max_bytes: Largest accepted file
        fetch_timeout: Timeout in seconds for URL ingestion
        transport: Optional httpx transport, used to stub remote fetches
    """

    def __init__(
        self,
        store: SupabaseStore,
        storage: DiskStorage,
        max_bytes: int,
        fetch_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.store = store
        self.storage = storage
        self.max_bytes = max_bytes
        self.fetch_timeout = fetch_timeout
        self.transport = transport

    async def list_by_session(self, session_id: str) -> List[Dict[str, Any]]:
        """All resource records of a session, newest first."""
        return await self.store.list_resources(session_id)

    async def list_csv_resources(self, session_id: str) -> List[CsvResource]:
        """The session's resources that should be treated as CSV."""
        records = await self.list_by_session(session_id)
        resources = [to_csv_resource(r) for r in records]
        return [r for r in resources if r.is_tabular]

    async def get(self, session_id: str, resource_id: str) -> Dict[str, Any]:
        """Fetch a resource record that belongs to ``session_id``.

        Raises:
            ResourceNotFoundError: If the resource does not exist in this session
        """
        record = await self.store.get_resource(resource_id)
        if record is None or str(record.get("session_id")) != str(session_id):
            raise ResourceNotFoundError(resource_id)
        return record

    async def create_from_upload(
        self,
        session_id: str,
        filename: Optional[str],
        content_type: Optional[str],
        data: bytes
    ) -> Dict[str, Any]:
        """Store uploaded bytes and record them as a resource.

        Raises:
            ResourceTooLargeError: If ``data`` exceeds the size limit
            ResourceValidationError: If the filename is too long
        """
        self._check_size(len(data))
        return await self._create(session_id, filename or "upload.csv", normalize_mime_type(content_type), data)

    async def create_from_url(self, session_id: str, url: str) -> Dict[str, Any]:
        """Download a CSV from ``url`` and record it as a resource.

        The declared Content-Length and the received body are both checked
        against the size limit.

        Raises:
            ResourceValidationError: If the URL is invalid or the fetch fails
            ResourceTooLargeError: If the file exceeds the size limit
        """
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ResourceValidationError("Invalid URL format")

        try:
            async with httpx.AsyncClient(
                timeout=self.fetch_timeout,
                follow_redirects=True,
                transport=self.transport
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise ResourceValidationError(
                            f"Failed to fetch file: {response.status_code} {response.reason_phrase}"
                        )

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit():
                        self._check_size(int(declared))

                    chunks = []
                    received = 0
                    async for chunk in response.aiter_bytes():
                        received += len(chunk)
                        self._check_size(received)
                        chunks.append(chunk)
                    content_type = response.headers.get("content-type")
        except httpx.TimeoutException as e:
            logger.warning(f"Timed out fetching {url}: {e}")
            raise ResourceValidationError(f"Timed out fetching {url}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            raise ResourceValidationError(f"Failed to fetch file: {e}") from e

        return await self._create(
            session_id,
            filename_from_url(url),
            normalize_mime_type(content_type),
            b"".join(chunks)
        )

    async def delete(self, session_id: str, resource_id: str) -> None:
        """Delete a resource's file, then its record.

        Raises:
            ResourceNotFoundError: If the resource does not exist in this session
        """
        record = await self.get(session_id, resource_id)
        await self.delete_record(record)

    async def delete_record(self, record: Dict[str, Any]) -> None:
        await asyncio.to_thread(self.storage.delete, record["stored_path"])
        await self.store.delete_resource(str(record["id"]))
        logger.info(f"Deleted resource {record['id']}")

    def file_path(self, record: Dict[str, Any]):
        """Absolute path of a resource's file, for downloads."""
        return self.storage.resolve(record["stored_path"])

    def _check_size(self, size: int) -> None:
        if size > self.max_bytes:
            logger.warning(f"Rejected file of {size} bytes (limit {self.max_bytes})")
            raise ResourceTooLargeError("File too large")

    async def _create(
        self,
        session_id: str,
        original_name: str,
        mime_type: str,
        data: bytes
    ) -> Dict[str, Any]:
        if len(original_name) > MAX_NAME_LENGTH:
            raise ResourceValidationError(f"Filename longer than {MAX_NAME_LENGTH} characters")

        stored_path = await asyncio.to_thread(self.storage.put, session_id, original_name, data)
        try:
            record = await self.store.create_resource({
                "session_id": session_id,
                "original_name": original_name,
                "stored_path": stored_path,
                "mime_type": mime_type,
                "size_bytes": len(data),
            })
        except Exception:
            await asyncio.to_thread(self.storage.delete, stored_path)
            raise
        if record is None:
            await asyncio.to_thread(self.storage.delete, stored_path)
            raise ResourceValidationError("Resource record was not created")
        return record
