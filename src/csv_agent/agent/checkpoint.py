"""Durable conversation checkpoints keyed by thread (session) ID."""

import logging
from abc import ABC, abstractmethod

from pydantic import ValidationError

from ..core.exceptions import CheckpointIOError
from ..core.supabase_client import SupabaseStore
from .models import Checkpoint

logger = logging.getLogger(__name__)


class CheckpointStore(ABC):
    """Load, replace and delete the complete turn history of a thread."""

    @abstractmethod
    async def load(self, thread_id: str) -> Checkpoint:
        """Return the latest checkpoint, or an empty one for a new thread.

        Raises:
            CheckpointIOError: If the stored state cannot be read or decoded
        """

    @abstractmethod
    async def save(self, thread_id: str, checkpoint: Checkpoint) -> None:
        """Replace the stored checkpoint for a thread.

        Raises:
            CheckpointIOError: If the write fails
        """

    @abstractmethod
    async def delete(self, thread_id: str) -> None:
        """Remove everything stored for a thread. Unknown threads are a no-op.

        Raises:
            CheckpointIOError: If the delete fails
        """


class SupabaseCheckpointStore(CheckpointStore):
    """Checkpoints kept as one JSON document per thread in ``agent_checkpoints``."""

    def __init__(self, store: SupabaseStore):
        self.store = store

    async def load(self, thread_id: str) -> Checkpoint:
        state = await self.store.load_checkpoint(thread_id)
        if state is None:
            return Checkpoint()
        try:
            return Checkpoint.model_validate(state)
        except ValidationError as e:
            raise CheckpointIOError(f"Stored checkpoint for {thread_id} is invalid: {e}") from e

    async def save(self, thread_id: str, checkpoint: Checkpoint) -> None:
        await self.store.save_checkpoint(thread_id, checkpoint.model_dump(mode="json"))
        logger.debug(f"Saved checkpoint for {thread_id} ({len(checkpoint.turns)} turns)")

    async def delete(self, thread_id: str) -> None:
        await self.store.delete_checkpoint(thread_id)
