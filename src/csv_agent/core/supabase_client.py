"""Supabase persistence for chat sessions, CSV resources and agent checkpoints."""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import create_client, Client
from postgrest.exceptions import APIError

from .exceptions import CheckpointIOError

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "chat_sessions"
RESOURCES_TABLE = "csv_resources"
CHECKPOINTS_TABLE = "agent_checkpoints"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _log_api_error(action: str, e: Exception) -> None:
    logger.error(f"Error {action}: {e}")
    if isinstance(e, APIError):
        if getattr(e, "details", None):
            logger.error(f"API Error details: {e.details}")
        if getattr(e, "hint", None):
            logger.error(f"API Error hint: {e.hint}")


class SupabaseStore:
    """Supabase-backed store for sessions, resources and conversation checkpoints.

    Expected tables:

    - ``chat_sessions``: id uuid pk, name text, created_at timestamptz, updated_at timestamptz
    - ``csv_resources``: id uuid pk, session_id uuid fk, original_name text,
      stored_path text unique, mime_type text, size_bytes bigint, created_at timestamptz
    - ``agent_checkpoints``: thread_id text pk, state jsonb, updated_at timestamptz

    The underlying client is created on first use, so constructing the store
    never opens a connection.
    """

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        client: Optional[Client] = None
    ):
        self.supabase_url = supabase_url or os.getenv("SUPABASE_URL")
        self.supabase_key = (
            supabase_key
            or os.getenv("SUPABASE_SERVICE_KEY")
            or os.getenv("SUPABASE_KEY")
        )
        self._client = client

    @property
    def client(self) -> Client:
        """Return the Supabase client, creating it on first access."""
        if self._client is None:
            if not self.supabase_url or not self.supabase_key:
                raise ValueError(
                    "SUPABASE_URL and SUPABASE_KEY must be provided or set in environment variables."
                )
            self._client = create_client(self.supabase_url, self.supabase_key)
            logger.info("Supabase client created")
        return self._client

    # Session methods

    async def create_session(self, name: str) -> Optional[Dict[str, Any]]:
        """Insert a new chat session.

        Args:
            name: Display name of the session

        Returns:
            Created session row, or None if the insert returned nothing

        Raises:
            APIError: If the insert is rejected by the database
        """
        now = _utcnow()
        try:
            result = self.client.table(SESSIONS_TABLE).insert({
                "name": name,
                "created_at": now,
                "updated_at": now
            }).execute()
            if result.data:
                logger.info(f"Created chat session {result.data[0]['id']}")
                return result.data[0]
            return None
        except Exception as e:
            _log_api_error("creating chat session", e)
            raise

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Retrieve a chat session by ID, or None if not found."""
        try:
            result = self.client.table(SESSIONS_TABLE).select("*").eq("id", session_id).limit(1).execute()
            if result.data:
                return result.data[0]
            return None
        except Exception as e:
            _log_api_error("retrieving chat session", e)
            return None

    async def list_sessions(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        """List chat sessions, most recently created first."""
        try:
            result = self.client.table(SESSIONS_TABLE) \
                .select("*") \
                .order("created_at", desc=True) \
                .limit(limit) \
                .offset(offset) \
                .execute()
            return result.data or []
        except Exception as e:
            _log_api_error("listing chat sessions", e)
            return []

    async def update_session(self, session_id: str, name: str) -> Optional[Dict[str, Any]]:
        """Rename a chat session and return the updated row."""
        try:
            result = self.client.table(SESSIONS_TABLE) \
                .update({"name": name, "updated_at": _utcnow()}) \
                .eq("id", session_id) \
                .execute()
            if result.data:
                return result.data[0]
            return None
        except Exception as e:
            _log_api_error("updating chat session", e)
            return None

    async def delete_session(self, session_id: str) -> bool:
        """Delete a chat session row. Returns True on success."""
        try:
            self.client.table(SESSIONS_TABLE).delete().eq("id", session_id).execute()
            return True
        except Exception as e:
            _log_api_error("deleting chat session", e)
            return False

    # Resource methods

    async def create_resource(self, resource: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Insert a CSV resource record.

        Raises:
            APIError: If the insert is rejected by the database
        """
        try:
            data = dict(resource)
            data.setdefault("created_at", _utcnow())
            result = self.client.table(RESOURCES_TABLE).insert(data).execute()
            if result.data:
                logger.info(f"Created resource {result.data[0]['id']} for session {data.get('session_id')}")
                return result.data[0]
            return None
        except Exception as e:
            _log_api_error("creating resource", e)
            raise

    async def get_resource(self, resource_id: str) -> Optional[Dict[str, Any]]:
        """Retrieve a resource record by ID, or None if not found."""
        try:
            result = self.client.table(RESOURCES_TABLE).select("*").eq("id", resource_id).limit(1).execute()
            if result.data:
                return result.data[0]
            return None
        except Exception as e:
            _log_api_error("retrieving resource", e)
            return None

    async def list_resources(self, session_id: str) -> List[Dict[str, Any]]:
        """List the resources of a session, newest first."""
        try:
            result = self.client.table(RESOURCES_TABLE) \
                .select("*") \
                .eq("session_id", session_id) \
                .order("created_at", desc=True) \
                .execute()
            return result.data or []
        except Exception as e:
            _log_api_error("listing resources", e)
            return []

    async def delete_resource(self, resource_id: str) -> bool:
        """Delete a resource record. Returns True on success."""
        try:
            self.client.table(RESOURCES_TABLE).delete().eq("id", resource_id).execute()
            return True
        except Exception as e:
            _log_api_error("deleting resource", e)
            return False

    # Checkpoint methods. Unlike the CRUD helpers above these raise, so the
    # checkpoint store can decide how each failure degrades.

    async def load_checkpoint(self, thread_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored state document for a thread, or None.

        Raises:
            CheckpointIOError: If the read fails
        """
        try:
            result = self.client.table(CHECKPOINTS_TABLE) \
                .select("state") \
                .eq("thread_id", thread_id) \
                .limit(1) \
                .execute()
        except Exception as e:
            _log_api_error("loading checkpoint", e)
            raise CheckpointIOError(f"Failed to load checkpoint for {thread_id}: {e}") from e
        if result.data:
            return result.data[0]["state"]
        return None

    async def save_checkpoint(self, thread_id: str, state: Dict[str, Any]) -> None:
        """Replace the stored state document for a thread.

        Raises:
            CheckpointIOError: If the write fails
        """
        try:
            self.client.table(CHECKPOINTS_TABLE).upsert({
                "thread_id": thread_id,
                "state": state,
                "updated_at": _utcnow()
            }, on_conflict="thread_id").execute()
        except Exception as e:
            _log_api_error("saving checkpoint", e)
            raise CheckpointIOError(f"Failed to save checkpoint for {thread_id}: {e}") from e

    async def delete_checkpoint(self, thread_id: str) -> None:
        """Remove the stored state for a thread. Deleting a missing thread is a no-op.

        Raises:
            CheckpointIOError: If the delete fails
        """
        try:
            self.client.table(CHECKPOINTS_TABLE).delete().eq("thread_id", thread_id).execute()
        except Exception as e:
            _log_api_error("deleting checkpoint", e)
            raise CheckpointIOError(f"Failed to delete checkpoint for {thread_id}: {e}") from e
