"""Chat session lifecycle and the message listing rendered from checkpoints."""

import logging
from typing import Any, Dict, List

from ..agent.checkpoint import CheckpointStore
from ..agent.models import AssistantTurn, UserTurn
from ..core.exceptions import CheckpointIOError, SessionNotFoundError
from ..core.supabase_client import SupabaseStore
from .resource_service import ResourceService

logger = logging.getLogger(__name__)


class SessionService:
    """Creates, renames and deletes chat sessions.

    Deleting a session removes its resources (files and records) and then
    its conversation checkpoint. A checkpoint that cannot be deleted is
    logged and left behind.
    """

    def __init__(
        self,
        store: SupabaseStore,
        resources: ResourceService,
        checkpoints: CheckpointStore
    ):
        self.store = store
        self.resources = resources
        self.checkpoints = checkpoints

    async def create(self, name: str) -> Dict[str, Any]:
        session = await self.store.create_session(name)
        if session is None:
            raise RuntimeError("Session was not created")
        return session

    async def list(self) -> List[Dict[str, Any]]:
        return await self.store.list_sessions()

    async def get(self, session_id: str) -> Dict[str, Any]:
        """Fetch a session.

        Raises:
            SessionNotFoundError: If no session has this ID
        """
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def rename(self, session_id: str, name: str) -> Dict[str, Any]:
        await self.get(session_id)
        session = await self.store.update_session(session_id, name)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def delete(self, session_id: str) -> None:
        """Delete a session with its resources and checkpoint.

        Raises:
            SessionNotFoundError: If no session has this ID
        """
        await self.get(session_id)

        for record in await self.resources.list_by_session(session_id):
            await self.resources.delete_record(record)

        await self.store.delete_session(session_id)

        try:
            await self.checkpoints.delete(session_id)
        except CheckpointIOError as e:
            logger.warning(f"Could not delete checkpoint for session {session_id}: {e}")

        logger.info(f"Deleted session {session_id}")

    async def list_messages(self, session_id: str) -> List[Dict[str, Any]]:
        """Render the conversation for display.

        Only user turns and final assistant answers are listed; assistant
        turns that request tools and tool results are internal. Message IDs
        are ``msg-<session>-<index>`` over the listed turns.

        Raises:
            SessionNotFoundError: If no session has this ID
        """
        await self.get(session_id)
        try:
            checkpoint = await self.checkpoints.load(session_id)
        except CheckpointIOError as e:
            logger.warning(f"Could not load checkpoint for session {session_id}: {e}")
            return []

        visible = [
            turn for turn in checkpoint.turns
            if isinstance(turn, UserTurn)
            or (isinstance(turn, AssistantTurn) and not turn.has_tool_calls())
        ]

        messages = []
        for index, turn in enumerate(visible):
            metadata = None
            if isinstance(turn, UserTurn) and turn.images:
                metadata = {"images": [image.model_dump(mode="json") for image in turn.images]}
            messages.append({
                "id": f"msg-{session_id}-{index}",
                "session_id": session_id,
                "role": turn.role,
                "content": turn.content,
                "metadata": metadata,
            })
        return messages
