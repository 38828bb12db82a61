"""LLMProvider backed by the OpenAI chat-completions API (openai SDK v1)."""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional
from pydantic import Field

from openai import AsyncOpenAI, OpenAIError

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

logger = logging.getLogger(__name__)


class OpenAIProviderConfig(LLMProviderConfig):
    """Configuration for OpenAI provider."""
    model: str = Field(default="gpt-4o")
    base_url: Optional[str] = None
    organization: Optional[str] = None


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Discarding unparseable tool arguments: {raw[:200]}")
        return {}
    return arguments if isinstance(arguments, dict) else {}


class OpenAIProvider(LLMProvider):
    """Chat-completions provider for GPT models.

    Tool calls use the ``function`` tool type, images are sent as data-URL
    ``image_url`` parts, and streaming requests usage in the final chunk.
    """

    def __init__(self, config: OpenAIProviderConfig):
        """Build the async SDK client.

        Raises:
            LLMConfigurationError: If the client cannot be created
        """
        super().__init__(config)

        try:
            self.client = AsyncOpenAI(
                api_key=config.api_key,
                base_url=config.base_url,
                organization=config.organization,
                timeout=config.timeout,
            )
        except Exception as e:
            raise LLMConfigurationError(f"Failed to initialize OpenAI client: {e}")

        self._model_supports_functions = self._check_function_support()
        self._model_supports_vision = self._check_vision_support()

    def _convert_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """Translate messages into chat-completions format."""
        converted = []
        for msg in messages:
            if msg.role == "tool":
                converted.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": msg.content or "",
                })
            elif msg.role == "assistant" and msg.tool_calls:
                converted.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": json.dumps(tc.arguments),
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            elif msg.role == "user" and msg.images:
                parts: List[Dict[str, Any]] = []
                if msg.content:
                    parts.append({"type": "text", "text": msg.content})
                for image in msg.images:
                    parts.append({
                        "type": "image_url",
                        "image_url": {"url": image.to_data_url()},
                    })
                converted.append({"role": "user", "content": parts})
            else:
                converted.append({"role": msg.role, "content": msg.content or ""})
        return converted

    def _build_request(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]],
        kwargs: Dict[str, Any]
    ) -> Dict[str, Any]:
        request_params: Dict[str, Any] = {
            "model": self.config.model,
            "messages": self._convert_messages(messages),
            "temperature": kwargs.get("temperature", self.config.temperature),
        }

        if self.config.max_tokens:
            request_params["max_tokens"] = self.config.max_tokens

        if tools and self._model_supports_functions:
            request_params["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    }
                }
                for tool in tools
            ]
            if kwargs.get("tool_choice"):
                request_params["tool_choice"] = kwargs["tool_choice"]

        return request_params

    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any
    ) -> GenerationResponse:
        """Request one complete chat completion.

        Raises:
            LLMGenerationError: If the API call fails
        """
        try:
            response = await self.client.chat.completions.create(
                **self._build_request(messages, tools, kwargs)
            )

            choice = response.choices[0]
            message = choice.message

            tool_calls_list = [
                ToolCall(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=_parse_arguments(tc.function.arguments),
                )
                for tc in (message.tool_calls or [])
            ]

            usage_dict = {}
            if response.usage:
                usage_dict = {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }

            return GenerationResponse(
                content=message.content,
                tool_calls=tool_calls_list,
                finish_reason=choice.finish_reason,
                usage=usage_dict,
                raw_response=response,
            )

        except OpenAIError as e:
            raise LLMGenerationError(f"OpenAI generation failed: {e}")
        except Exception as e:
            raise LLMGenerationError(f"Unexpected error during generation: {e}")

    async def stream(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response using OpenAI's API.

        Tool-call fragments arrive spread across chunks and are accumulated
        by their index until the stream ends.

        Raises:
            LLMGenerationError: If generation fails
        """
        request_params = self._build_request(messages, tools, kwargs)
        request_params["stream"] = True
        request_params["stream_options"] = {"include_usage": True}

        text_parts: List[str] = []
        pending: Dict[int, Dict[str, str]] = {}
        finish_reason = None
        usage_dict: Dict[str, int] = {}

        try:
            stream = await self.client.chat.completions.create(**request_params)
            async for chunk in stream:
                if getattr(chunk, "usage", None):
                    usage_dict = {
                        "prompt_tokens": chunk.usage.prompt_tokens,
                        "completion_tokens": chunk.usage.completion_tokens,
                        "total_tokens": chunk.usage.total_tokens,
                    }
                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta
                if delta is not None:
                    if delta.content:
                        text_parts.append(delta.content)
                        yield StreamChunk(delta=delta.content)
                    for tc in delta.tool_calls or []:
                        acc = pending.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                        if tc.id:
                            acc["id"] = tc.id
                        if tc.function is not None:
                            if tc.function.name:
                                acc["name"] += tc.function.name
                            if tc.function.arguments:
                                acc["arguments"] += tc.function.arguments
                if choice.finish_reason:
                    finish_reason = choice.finish_reason

        except OpenAIError as e:
            raise LLMGenerationError(f"OpenAI generation failed: {e}")
        except Exception as e:
            raise LLMGenerationError(f"Unexpected error during generation: {e}")

        tool_calls_list = [
            ToolCall(
                id=acc["id"],
                name=acc["name"],
                arguments=_parse_arguments(acc["arguments"]),
            )
            for _, acc in sorted(pending.items())
        ]

        yield StreamChunk(response=GenerationResponse(
            content="".join(text_parts) or None,
            tool_calls=tool_calls_list,
            finish_reason=finish_reason,
            usage=usage_dict,
        ))

    async def close(self) -> None:
        await self.client.close()

    def supports_functions(self) -> bool:
        return self._model_supports_functions

    def supports_vision(self) -> bool:
        return self._model_supports_vision

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "provider": "openai",
            "model": self.config.model,
            "supports_functions": self._model_supports_functions,
            "supports_vision": self._model_supports_vision,
        }

    @property
    def provider_name(self) -> str:
        return "openai"

    def _check_function_support(self) -> bool:
        """Check if the configured model supports function calling."""
        no_function_models = {
            "gpt-3.5-turbo-instruct",
            "o1-mini",
            "o1-preview",
        }

        for model in no_function_models:
            if self.config.model.startswith(model):
                return False

        return True

    def _check_vision_support(self) -> bool:
        """Check if the configured model supports vision."""
        return not self.config.model.startswith("gpt-3.5")
