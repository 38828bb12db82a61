"""Building LLM providers from a provider name or the server configuration.

Providers are cheap to build, so the agent creates one per execution and a
missing credential only surfaces when a message is actually sent.
"""

import logging
import os
from typing import TYPE_CHECKING, Any, Dict, Literal, NamedTuple, Optional, Type

from .providers import (
    AnthropicProvider,
    AnthropicProviderConfig,
    LLMConfigurationError,
    LLMProvider,
    LLMProviderConfig,
    OpenAIProvider,
    OpenAIProviderConfig,
)

if TYPE_CHECKING:
    from ..config.settings import ServerConfig

logger = logging.getLogger(__name__)

ProviderType = Literal["openai", "anthropic"]


class _ProviderSpec(NamedTuple):
    label: str
    provider_class: Type[LLMProvider]
    config_class: Type[LLMProviderConfig]
    key_env_var: str
    extra_options: tuple


_PROVIDERS: Dict[str, _ProviderSpec] = {
    "openai": _ProviderSpec("OpenAI", OpenAIProvider, OpenAIProviderConfig, "OPENAI_API_KEY", ("base_url", "organization")),
    "anthropic": _ProviderSpec("Anthropic", AnthropicProvider, AnthropicProviderConfig, "ANTHROPIC_API_KEY", ("base_url",)),
}


def create_provider(
    provider_type: ProviderType,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> LLMProvider:
    """Create an LLM provider by name.

    Unset options fall back to the provider config defaults. Without
    ``api_key`` the provider's usual environment variable is read
    (``OPENAI_API_KEY`` or ``ANTHROPIC_API_KEY``).

    Args:
        provider_type: "openai" or "anthropic", in any case
        api_key: Credential for the provider
        model: Model name
        temperature: Sampling temperature
        max_tokens: Maximum tokens to generate
        timeout: Request timeout in seconds
        **kwargs: ``base_url`` for both providers, ``organization`` for OpenAI

    Raises:
        LLMConfigurationError: If the name is unknown or no credential is available

    Examples:
        >>> provider = create_provider("anthropic", api_key="sk-ant-...")
    """
    spec = _PROVIDERS.get(provider_type.lower())
    if spec is None:
        raise LLMConfigurationError(
            f"Unknown provider type: {provider_type}. "
            f"Supported providers: {', '.join(_PROVIDERS)}"
        )

    resolved_api_key = api_key or os.getenv(spec.key_env_var)
    if not resolved_api_key:
        raise LLMConfigurationError(
            f"{spec.label} API key not provided. Set {spec.key_env_var} environment variable "
            "or pass api_key parameter."
        )

    options = {
        "model": model,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "timeout": timeout,
    }
    options.update({name: kwargs.get(name) for name in spec.extra_options})
    config = spec.config_class(
        api_key=resolved_api_key,
        **{name: value for name, value in options.items() if value is not None}
    )
    return spec.provider_class(config)


def create_provider_from_config(config: "ServerConfig") -> LLMProvider:
    """Create the provider named by the server configuration.

    Raises:
        LLMConfigurationError: If the credential is missing or configuration fails
    """
    logger.debug(f"Creating {config.llm_provider} provider (model={config.llm_model or 'default'})")
    return create_provider(
        provider_type=config.llm_provider,
        api_key=config.llm_api_key,
        model=config.llm_model,
        temperature=config.llm_temperature,
    )
