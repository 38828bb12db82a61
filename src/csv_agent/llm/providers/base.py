"""Provider-neutral message types and the interface every LLM provider implements.

The agent only ever talks to :class:`LLMProvider`. Each concrete provider
translates :class:`Message` lists and :class:`ToolDefinition` catalogs into
its SDK's request format and normalizes replies into
:class:`GenerationResponse`.
"""

import base64
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

MESSAGE_ROLES = {"system", "user", "assistant", "tool"}


class LLMProviderError(Exception):
    """Base exception for LLM provider errors."""
    pass


class LLMConfigurationError(LLMProviderError):
    """The provider cannot be built, e.g. the credential is missing."""
    pass


class LLMGenerationError(LLMProviderError):
    """The model call failed or returned something unusable."""
    pass


class ImageInput(BaseModel):
    """An image sent to the model alongside a user message."""
    media_type: str
    data: bytes

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.to_base64()}"


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""
    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """One entry of the message list sent to a provider.

    ``tool_calls`` is set on assistant messages that requested tools, and
    ``tool_call_id`` on the tool messages answering them.
    """
    role: str
    content: Optional[str] = None
    name: Optional[str] = None
    images: List[ImageInput] = Field(default_factory=list)
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None

    @field_validator('role')
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v not in MESSAGE_ROLES:
            raise ValueError(f"Role must be one of {MESSAGE_ROLES}, got: {v}")
        return v


class GenerationResponse(BaseModel):
    """A complete model reply: text, requested tools, and usage counters."""
    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Dict[str, int] = Field(default_factory=dict)
    raw_response: Optional[Any] = None

    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


class StreamChunk(BaseModel):
    """One item of a streamed generation.

    Intermediate chunks carry a text ``delta``. The last chunk carries the
    consolidated ``response``.
    """
    delta: str = ""
    response: Optional[GenerationResponse] = None


class ToolDefinition(BaseModel):
    """A tool offered to the model, with a JSON Schema for its arguments."""
    name: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('parameters', mode='before')
    @classmethod
    def validate_parameters(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            raise ValueError("Parameters must be a dictionary")
        return v


class LLMProviderConfig(BaseModel):
    """Settings shared by all providers."""
    api_key: str
    model: str
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    timeout: float = Field(default=60.0, gt=0)

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("API key cannot be empty")
        return v.strip()


class LLMProvider(ABC):
    """Interface implemented by the OpenAI and Anthropic providers.

    Args:
        config: Provider-specific configuration
    """

    def __init__(self, config: LLMProviderConfig):
        self.config = config

    @abstractmethod
    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any
    ) -> GenerationResponse:
        """Produce one complete reply.

        ``kwargs`` may override ``temperature`` or set ``tool_choice``.

        Raises:
            LLMGenerationError: If generation fails
        """

    async def stream(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any
    ) -> AsyncIterator[StreamChunk]:
        """Stream a reply.

        Yields text deltas as they are produced, then one final chunk whose
        ``response`` holds the complete text and any tool calls. Providers
        without incremental delivery inherit this default, which yields only
        the final chunk.

        Raises:
            LLMGenerationError: If generation fails
        """
        response = await self.generate(messages, tools=tools, **kwargs)
        yield StreamChunk(response=response)

    async def close(self) -> None:
        """Release the connections held by the SDK client. A no-op by default."""

    @abstractmethod
    def supports_functions(self) -> bool:
        """Whether the configured model accepts tool definitions."""

    @abstractmethod
    def supports_vision(self) -> bool:
        """Whether the configured model accepts image inputs."""

    @abstractmethod
    def get_model_info(self) -> Dict[str, Any]:
        """Provider name, model and capability flags."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short provider name, e.g. "openai"."""
