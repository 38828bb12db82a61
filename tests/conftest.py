"""Shared fixtures: CSV files on disk, in-memory stores and scripted LLM providers."""

import copy
import itertools
from typing import Any, Dict, List

import pytest

from csv_agent.agent.checkpoint import CheckpointStore
from csv_agent.agent.models import Checkpoint
from csv_agent.analysis.csv_engine import CsvAnalysisEngine
from csv_agent.analysis.models import CsvResource
from csv_agent.config.settings import ServerConfig
from csv_agent.core.exceptions import CheckpointIOError
from csv_agent.core.supabase_client import SupabaseStore
from csv_agent.llm.providers.base import (
    GenerationResponse,
    LLMProvider,
    LLMProviderConfig,
    StreamChunk,
)

SALES_CSV = "Region,Amount\nNorth,100\nSouth,200\nNorth,50\n"


class InMemoryStore(SupabaseStore):
    """SupabaseStore keeping rows in dictionaries instead of Postgres."""

    def __init__(self):
        super().__init__(supabase_url="http://supabase.test", supabase_key="test-key", client=object())
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.resources: Dict[str, Dict[str, Any]] = {}
        self.checkpoints: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    def _stamp(self) -> str:
        return f"2025-01-01T00:00:{next(self._clock):02d}+00:00"

    async def create_session(self, name):
        now = self._stamp()
        session = {"id": f"session-{next(self._ids)}", "name": name, "created_at": now, "updated_at": now}
        self.sessions[session["id"]] = session
        return dict(session)

    async def get_session(self, session_id):
        session = self.sessions.get(session_id)
        return dict(session) if session else None

    async def list_sessions(self, limit=100, offset=0):
        ordered = sorted(self.sessions.values(), key=lambda s: s["created_at"], reverse=True)
        return [dict(s) for s in ordered[offset:offset + limit]]

    async def update_session(self, session_id, name):
        if session_id not in self.sessions:
            return None
        self.sessions[session_id].update(name=name, updated_at=self._stamp())
        return dict(self.sessions[session_id])

    async def delete_session(self, session_id):
        return self.sessions.pop(session_id, None) is not None

    async def create_resource(self, resource):
        record = dict(resource, id=f"resource-{next(self._ids)}", created_at=self._stamp())
        self.resources[record["id"]] = record
        return dict(record)

    async def get_resource(self, resource_id):
        record = self.resources.get(resource_id)
        return dict(record) if record else None

    async def list_resources(self, session_id):
        records = [r for r in self.resources.values() if r["session_id"] == session_id]
        return [dict(r) for r in sorted(records, key=lambda r: r["created_at"], reverse=True)]

    async def delete_resource(self, resource_id):
        return self.resources.pop(resource_id, None) is not None

    async def load_checkpoint(self, thread_id):
        state = self.checkpoints.get(thread_id)
        return copy.deepcopy(state) if state is not None else None

    async def save_checkpoint(self, thread_id, state):
        self.checkpoints[thread_id] = copy.deepcopy(state)

    async def delete_checkpoint(self, thread_id):
        self.checkpoints.pop(thread_id, None)


class MemoryCheckpointStore(CheckpointStore):
    """Checkpoint store with switchable read/write failures."""

    def __init__(self):
        self.data: Dict[str, Checkpoint] = {}
        self.fail_load = False
        self.fail_save = False
        self.fail_delete = False
        self.saves = 0

    async def load(self, thread_id):
        if self.fail_load:
            raise CheckpointIOError("checkpoint read failed")
        stored = self.data.get(thread_id)
        return stored.model_copy(deep=True) if stored else Checkpoint()

    async def save(self, thread_id, checkpoint):
        if self.fail_save:
            raise CheckpointIOError("checkpoint write failed")
        self.saves += 1
        self.data[thread_id] = checkpoint.model_copy(deep=True)

    async def delete(self, thread_id):
        if self.fail_delete:
            raise CheckpointIOError("checkpoint delete failed")
        self.data.pop(thread_id, None)


class ScriptedProvider(LLMProvider):
    """LLM provider replaying canned responses.

    With ``incremental=True`` the text of each response is streamed in
    ``chunk_size`` pieces before the final chunk; otherwise only the final
    chunk is produced. Once the script runs out the last response repeats.
    """

    def __init__(self, responses: List[GenerationResponse], incremental: bool = True, chunk_size: int = 3):
        super().__init__(LLMProviderConfig(api_key="test-key", model="scripted"))
        self.responses = list(responses)
        self.incremental = incremental
        self.chunk_size = chunk_size
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def _next(self, messages, tools) -> GenerationResponse:
        self.calls.append({"messages": list(messages), "tools": tools})
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        return self.responses[index]

    async def generate(self, messages, tools=None, **kwargs):
        return self._next(messages, tools)

    async def stream(self, messages, tools=None, **kwargs):
        response = self._next(messages, tools)
        if self.incremental and response.content:
            text = response.content
            for start in range(0, len(text), self.chunk_size):
                yield StreamChunk(delta=text[start:start + self.chunk_size])
        yield StreamChunk(response=response)

    async def close(self):
        self.closed = True

    def supports_functions(self):
        return True

    def supports_vision(self):
        return True

    def get_model_info(self):
        return {"provider": "scripted", "model": "scripted"}

    @property
    def provider_name(self):
        return "scripted"


@pytest.fixture
def sales_csv(tmp_path):
    """sales.csv with 3 rows, stored under the uploads directory."""
    path = tmp_path / "session-1" / "sales.csv"
    path.parent.mkdir(parents=True)
    path.write_text(SALES_CSV, encoding="utf-8")
    return path


@pytest.fixture
def sales_resource(sales_csv):
    return CsvResource(
        id="res-sales",
        original_name="sales.csv",
        stored_path="session-1/sales.csv",
        size_bytes=sales_csv.stat().st_size,
        mime_type="text/csv",
    )


@pytest.fixture
def engine(tmp_path):
    return CsvAnalysisEngine(tmp_path)


@pytest.fixture
def server_config(tmp_path):
    return ServerConfig(
        llm_provider="openai",
        llm_api_key="sk-test",
        uploads_dir=str(tmp_path),
        supabase_url="http://supabase.test",
        supabase_key="test-key",
        max_tool_rounds=5,
    )


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def checkpoint_store():
    return MemoryCheckpointStore()


@pytest.fixture
def make_provider():
    """Factory for ScriptedProvider instances."""
    def _make(responses, incremental: bool = True, chunk_size: int = 3) -> ScriptedProvider:
        return ScriptedProvider(responses, incremental=incremental, chunk_size=chunk_size)
    return _make
