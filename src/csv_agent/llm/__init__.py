"""LLM provider abstraction layer.

This package provides an extensible interface for interacting with different
LLM providers (OpenAI, Anthropic) through a unified API, including streamed
generation and tool calling.

Usage:
    from csv_agent.llm import create_provider, Message

    provider = create_provider("openai", api_key="sk-...")

    messages = [Message(role="user", content="Hello!")]
    async for chunk in provider.stream(messages):
        print(chunk.delta, end="")
"""

from .factory import (
    create_provider,
    create_provider_from_config,
    ProviderType,
)
from .providers import (
    LLMProvider,
    LLMProviderConfig,
    LLMProviderError,
    LLMConfigurationError,
    LLMGenerationError,
    ImageInput,
    Message,
    GenerationResponse,
    StreamChunk,
    ToolCall,
    ToolDefinition,
    OpenAIProvider,
    OpenAIProviderConfig,
    AnthropicProvider,
    AnthropicProviderConfig,
)

__all__ = [
    "create_provider",
    "create_provider_from_config",
    "ProviderType",
    "LLMProvider",
    "LLMProviderConfig",
    "LLMProviderError",
    "LLMConfigurationError",
    "LLMGenerationError",
    "ImageInput",
    "Message",
    "GenerationResponse",
    "StreamChunk",
    "ToolCall",
    "ToolDefinition",
    "OpenAIProvider",
    "OpenAIProviderConfig",
    "AnthropicProvider",
    "AnthropicProviderConfig",
]
