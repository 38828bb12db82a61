"""Streaming entry point: one user message in, a lazy sequence of text fragments out."""

import asyncio
import json
import logging
import weakref
from typing import TYPE_CHECKING, AsyncIterator, List, Optional

from pydantic import BaseModel

from .executor import AgentExecutor
from .models import AgentState, ImageAttachment

if TYPE_CHECKING:
    from ..services.session_service import SessionService

logger = logging.getLogger(__name__)

SSE_DONE = "data: [DONE]\n\n"


class StreamEvent(BaseModel):
    """One fragment of agent output, or the error that ended the stream."""
    content: Optional[str] = None
    error: Optional[str] = None

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.model_dump(exclude_none=True))}\n\n"


class AgentService:
    """Runs the agent for a session and exposes its output as stream events.

    Executions on the same session are serialized by a per-session lock, so
    each one sees the checkpoint written by the previous one.
    """

    def __init__(self, sessions: "SessionService", executor: AgentExecutor):
        self.sessions = sessions
        self.executor = executor
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def stream_agent(
        self,
        session_id: str,
        text: Optional[str],
        images: Optional[List[ImageAttachment]] = None
    ) -> AsyncIterator[StreamEvent]:
        """Validate the session and return the event stream for one message.

        Nothing runs until the returned iterator is consumed. The iterator
        never raises: a failure during execution becomes a final event
        carrying ``error``.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        await self.sessions.get(session_id)
        state = AgentState(
            session_id=session_id,
            current_query=text or "",
            current_query_images=list(images or [])
        )
        return self._run(state)

    async def _run(self, state: AgentState) -> AsyncIterator[StreamEvent]:
        lock = self._lock_for(state.session_id)
        async with lock:
            try:
                async for fragment in self.executor.run(state):
                    yield StreamEvent(content=fragment)
            except Exception as e:
                logger.error(f"Agent execution failed for session {state.session_id}: {e}", exc_info=True)
                yield StreamEvent(error=str(e))
