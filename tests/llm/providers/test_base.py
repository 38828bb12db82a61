"""Tests for base LLM provider interface and models."""

import pytest
from pydantic import ValidationError

from csv_agent.llm.providers import (
    GenerationResponse,
    ImageInput,
    LLMProvider,
    LLMProviderConfig,
    Message,
    StreamChunk,
    ToolCall,
    ToolDefinition,
)


class TestMessage:
    """Tests for Message model."""

    def test_message_creation(self):
        msg = Message(role="user", content="Hello!")
        assert msg.role == "user"
        assert msg.content == "Hello!"
        assert msg.images == []
        assert msg.tool_calls is None

    def test_invalid_role(self):
        """Test that invalid role raises ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            Message(role="function", content="test")
        assert "Role must be one of" in str(exc_info.value)

    def test_valid_roles(self):
        for role in ["system", "user", "assistant", "tool"]:
            assert Message(role=role, content="test").role == role

    def test_tool_result_message(self):
        msg = Message(role="tool", content='{"success": true}', tool_call_id="call_1", name="load_csv_data")
        assert msg.tool_call_id == "call_1"


class TestImageInput:
    """Tests for ImageInput."""

    def test_data_url(self):
        image = ImageInput(media_type="image/png", data=b"abc")
        assert image.to_base64() == "YWJj"
        assert image.to_data_url() == "data:image/png;base64,YWJj"


class TestToolCall:
    """Tests for ToolCall model."""

    def test_tool_call_creation(self):
        tool_call = ToolCall(id="call_123", name="execute_sql_query", arguments={"query": "SELECT 1"})
        assert tool_call.name == "execute_sql_query"
        assert tool_call.arguments["query"] == "SELECT 1"

    def test_tool_call_empty_arguments(self):
        assert ToolCall(id="call_456", name="load_csv_data").arguments == {}


class TestToolDefinition:
    """Tests for ToolDefinition model."""

    def test_tool_definition_no_parameters(self):
        assert ToolDefinition(name="reset", description="Reset").parameters == {}

    def test_invalid_parameters_type(self):
        with pytest.raises(ValidationError):
            ToolDefinition(name="test", description="test", parameters="not a dict")  # type: ignore


class TestGenerationResponse:
    """Tests for GenerationResponse model."""

    def test_response_defaults(self):
        response = GenerationResponse()
        assert response.content is None
        assert response.tool_calls == []
        assert response.usage == {}
        assert not response.has_tool_calls()

    def test_response_with_tool_calls(self):
        response = GenerationResponse(
            tool_calls=[ToolCall(id="call_789", name="get_csv_statistics")],
            finish_reason="tool_calls"
        )
        assert response.has_tool_calls()


class TestLLMProviderConfig:
    """Tests for LLMProviderConfig model."""

    def test_defaults(self):
        config = LLMProviderConfig(api_key="test-key", model="m")
        assert config.temperature == 0.0
        assert config.max_tokens is None
        assert config.timeout == 60.0

    def test_api_key_is_stripped(self):
        assert LLMProviderConfig(api_key="  key  ", model="m").api_key == "key"

    def test_empty_api_key(self):
        with pytest.raises(ValidationError) as exc_info:
            LLMProviderConfig(api_key="   ", model="m")
        assert "API key cannot be empty" in str(exc_info.value)

    def test_temperature_bounds(self):
        with pytest.raises(ValidationError):
            LLMProviderConfig(api_key="k", model="m", temperature=2.5)


class _OneShotProvider(LLMProvider):
    async def generate(self, messages, tools=None, **kwargs):
        return GenerationResponse(content=f"echo: {messages[-1].content}")

    def supports_functions(self):
        return False

    def supports_vision(self):
        return False

    def get_model_info(self):
        return {"provider": "one-shot"}

    @property
    def provider_name(self):
        return "one-shot"


class TestDefaultStream:
    """Tests for the non-incremental stream fallback."""

    @pytest.mark.asyncio
    async def test_yields_only_final_chunk(self):
        provider = _OneShotProvider(LLMProviderConfig(api_key="k", model="m"))

        chunks = [c async for c in provider.stream([Message(role="user", content="hi")])]

        assert len(chunks) == 1
        assert isinstance(chunks[0], StreamChunk)
        assert chunks[0].delta == ""
        assert chunks[0].response.content == "echo: hi"

    def test_cannot_instantiate_abstract_provider(self):
        with pytest.raises(TypeError):
            LLMProvider(LLMProviderConfig(api_key="k", model="m"))  # type: ignore
