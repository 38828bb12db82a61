"""Tests for session lifecycle and message listing."""

import pytest

from csv_agent.agent.models import (
    AssistantTurn,
    Checkpoint,
    ImageAttachment,
    ToolResultTurn,
    UserTurn,
)
from csv_agent.core.exceptions import SessionNotFoundError
from csv_agent.core.storage import DiskStorage
from csv_agent.llm.providers.base import ToolCall
from csv_agent.services.resource_service import ResourceService
from csv_agent.services.session_service import SessionService


@pytest.fixture
def resources(memory_store, tmp_path):
    return ResourceService(memory_store, DiskStorage(tmp_path), max_bytes=1024)


@pytest.fixture
def sessions(memory_store, resources, checkpoint_store):
    return SessionService(memory_store, resources, checkpoint_store)


class TestSessionLifecycle:
    """Tests for create, list, rename and delete."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, sessions):
        created = await sessions.create("Quarterly sales")

        assert (await sessions.get(created["id"]))["name"] == "Quarterly sales"

    @pytest.mark.asyncio
    async def test_list_newest_first(self, sessions):
        first = await sessions.create("first")
        second = await sessions.create("second")

        assert [s["id"] for s in await sessions.list()] == [second["id"], first["id"]]

    @pytest.mark.asyncio
    async def test_get_missing(self, sessions):
        with pytest.raises(SessionNotFoundError):
            await sessions.get("nope")

    @pytest.mark.asyncio
    async def test_rename_updates_timestamp(self, sessions):
        created = await sessions.create("old")

        renamed = await sessions.rename(created["id"], "new")

        assert renamed["name"] == "new"
        assert renamed["updated_at"] > created["updated_at"]

    @pytest.mark.asyncio
    async def test_rename_missing(self, sessions):
        with pytest.raises(SessionNotFoundError):
            await sessions.rename("nope", "name")

    @pytest.mark.asyncio
    async def test_delete_cascades(self, sessions, resources, memory_store, checkpoint_store, tmp_path):
        session = await sessions.create("doomed")
        record = await resources.create_from_upload(session["id"], "a.csv", "text/csv", b"x,y\n1,2\n")
        checkpoint_store.data[session["id"]] = Checkpoint(turns=[UserTurn(content="hi")])

        await sessions.delete(session["id"])

        assert memory_store.sessions == {}
        assert memory_store.resources == {}
        assert not (tmp_path / record["stored_path"]).exists()
        assert session["id"] not in checkpoint_store.data

    @pytest.mark.asyncio
    async def test_delete_tolerates_checkpoint_failure(self, sessions, memory_store, checkpoint_store):
        session = await sessions.create("doomed")
        checkpoint_store.fail_delete = True

        await sessions.delete(session["id"])

        assert memory_store.sessions == {}

    @pytest.mark.asyncio
    async def test_delete_missing(self, sessions):
        with pytest.raises(SessionNotFoundError):
            await sessions.delete("nope")


class TestListMessages:
    """Tests for rendering the conversation."""

    @pytest.mark.asyncio
    async def test_only_user_turns_and_final_answers(self, sessions, checkpoint_store):
        session = await sessions.create("chat")
        checkpoint_store.data[session["id"]] = Checkpoint(turns=[
            UserTurn(content="what's the average?"),
            AssistantTurn(content="", tool_calls=[ToolCall(id="c1", name="execute_sql_query")]),
            ToolResultTurn(tool_call_id="c1", name="execute_sql_query", content="{}"),
            AssistantTurn(content="116.67"),
        ])

        messages = await sessions.list_messages(session["id"])

        assert [(m["role"], m["content"]) for m in messages] == [
            ("user", "what's the average?"),
            ("assistant", "116.67"),
        ]
        assert [m["id"] for m in messages] == [f"msg-{session['id']}-0", f"msg-{session['id']}-1"]
        assert all(m["metadata"] is None for m in messages)

    @pytest.mark.asyncio
    async def test_images_in_metadata(self, sessions, checkpoint_store):
        session = await sessions.create("chat")
        checkpoint_store.data[session["id"]] = Checkpoint(turns=[
            UserTurn(content="", images=[ImageAttachment(data=b"abc", media_type="image/png")])
        ])

        messages = await sessions.list_messages(session["id"])

        assert messages[0]["metadata"] == {"images": [{"data": "YWJj", "media_type": "image/png"}]}

    @pytest.mark.asyncio
    async def test_new_session_has_no_messages(self, sessions):
        session = await sessions.create("empty")

        assert await sessions.list_messages(session["id"]) == []

    @pytest.mark.asyncio
    async def test_unreadable_checkpoint(self, sessions, checkpoint_store):
        session = await sessions.create("chat")
        checkpoint_store.fail_load = True

        assert await sessions.list_messages(session["id"]) == []

    @pytest.mark.asyncio
    async def test_missing_session(self, sessions):
        with pytest.raises(SessionNotFoundError):
            await sessions.list_messages("nope")
