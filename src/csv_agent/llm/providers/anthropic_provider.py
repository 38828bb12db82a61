"""LLMProvider backed by Anthropic's Messages API."""

from typing import Any, AsyncIterator, Dict, List, Optional
from pydantic import Field

from anthropic import AsyncAnthropic, AnthropicError

from .base import (
    LLMProvider,
    LLMProviderConfig,
    LLMConfigurationError,
    LLMGenerationError,
    Message,
    GenerationResponse,
    StreamChunk,
    ToolCall,
    ToolDefinition,
)

DEFAULT_MAX_TOKENS = 4096


class AnthropicProviderConfig(LLMProviderConfig):
    """Configuration for Anthropic provider."""
    model: str = Field(default="claude-3-5-sonnet-20241022")
    base_url: Optional[str] = None


class AnthropicProvider(LLMProvider):
    """Messages-API provider for Claude models.

    The system prompt travels in the ``system`` field, tool results are sent
    back as ``tool_result`` blocks in a user message, and images as base64
    ``image`` blocks.
    """

    def __init__(self, config: AnthropicProviderConfig):
        """Build the async SDK client.

        Raises:
            LLMConfigurationError: If the client cannot be created
        """
        super().__init__(config)

        try:
            self.client = AsyncAnthropic(
                api_key=config.api_key,
                base_url=config.base_url,
                timeout=config.timeout,
            )
        except Exception as e:
            raise LLMConfigurationError(f"Failed to initialize Anthropic client: {e}")

        self._model_supports_tools = self._check_tool_support()
        self._model_supports_vision = self._check_vision_support()

    def _build_request(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]],
        kwargs: Dict[str, Any]
    ) -> Dict[str, Any]:
        system_message = None
        anthropic_messages: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                system_message = msg.content
            elif msg.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content or ""
                }
                # All results for one assistant turn go back in a single user message
                previous = anthropic_messages[-1] if anthropic_messages else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    anthropic_messages.append({"role": "user", "content": [block]})
            elif msg.role == "assistant" and msg.tool_calls:
                content_blocks = []
                if msg.content:
                    content_blocks.append({
                        "type": "text",
                        "text": msg.content
                    })
                for tc in msg.tool_calls:
                    content_blocks.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": tc.arguments
                    })
                anthropic_messages.append({
                    "role": "assistant",
                    "content": content_blocks
                })
            elif msg.role == "user" and msg.images:
                content_blocks = [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": image.media_type,
                            "data": image.to_base64(),
                        }
                    }
                    for image in msg.images
                ]
                if msg.content:
                    content_blocks.append({"type": "text", "text": msg.content})
                anthropic_messages.append({"role": "user", "content": content_blocks})
            else:
                anthropic_messages.append({
                    "role": msg.role,
                    "content": msg.content or "",
                })

        request_params: Dict[str, Any] = {
            "model": self.config.model,
            "messages": anthropic_messages,
            "temperature": kwargs.get("temperature", self.config.temperature),
            "max_tokens": self.config.max_tokens or DEFAULT_MAX_TOKENS,
        }

        if system_message:
            request_params["system"] = system_message

        if tools and self._model_supports_tools:
            request_params["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.parameters,
                }
                for tool in tools
            ]
            if kwargs.get("tool_choice"):
                request_params["tool_choice"] = kwargs["tool_choice"]

        return request_params

    @staticmethod
    def _to_response(response: Any) -> GenerationResponse:
        text_parts = []
        tool_calls_list = []

        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls_list.append(
                    ToolCall(
                        id=block.id,
                        name=block.name,
                        arguments=dict(block.input or {}),
                    )
                )

        usage_dict = {}
        if response.usage:
            usage_dict = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            }

        return GenerationResponse(
            content="".join(text_parts) or None,
            tool_calls=tool_calls_list,
            finish_reason=response.stop_reason,
            usage=usage_dict,
            raw_response=response,
        )

    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any
    ) -> GenerationResponse:
        """Request one complete message.

        Raises:
            LLMGenerationError: If the API call fails
        """
        try:
            response = await self.client.messages.create(
                **self._build_request(messages, tools, kwargs)
            )
            return self._to_response(response)
        except AnthropicError as e:
            raise LLMGenerationError(f"Anthropic generation failed: {e}")
        except Exception as e:
            raise LLMGenerationError(f"Unexpected error during generation: {e}")

    async def stream(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response with the SDK's message stream helper.

        Raises:
            LLMGenerationError: If generation fails
        """
        request_params = self._build_request(messages, tools, kwargs)
        try:
            async with self.client.messages.stream(**request_params) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield StreamChunk(delta=text)
                final_message = await stream.get_final_message()
        except AnthropicError as e:
            raise LLMGenerationError(f"Anthropic generation failed: {e}")
        except Exception as e:
            raise LLMGenerationError(f"Unexpected error during generation: {e}")

        yield StreamChunk(response=self._to_response(final_message))

    async def close(self) -> None:
        await self.client.close()

    def supports_functions(self) -> bool:
        return self._model_supports_tools

    def supports_vision(self) -> bool:
        return self._model_supports_vision

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "provider": "anthropic",
            "model": self.config.model,
            "supports_functions": self._model_supports_tools,
            "supports_vision": self._model_supports_vision,
        }

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _check_tool_support(self) -> bool:
        """Check if the configured model supports tool use."""
        legacy_models = {
            "claude-2",
            "claude-instant",
        }

        for model in legacy_models:
            if self.config.model.startswith(model):
                return False

        return True

    def _check_vision_support(self) -> bool:
        """Check if the configured model supports vision."""
        return self._check_tool_support()
