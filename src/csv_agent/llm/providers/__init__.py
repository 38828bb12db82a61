"""Concrete LLM providers and the types they share."""

from .base import (
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
)
from .openai_provider import OpenAIProvider, OpenAIProviderConfig
from .anthropic_provider import AnthropicProvider, AnthropicProviderConfig

__all__ = [
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
