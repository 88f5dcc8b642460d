"""llmkit: shared LLM configuration and provider presets."""

from llmkit.config import LLMConfig
from llmkit.providers import (
    PROVIDERS,
    ProviderInfo,
    get_provider,
    list_providers,
    resolve_provider_token,
)

__all__ = [
    "LLMConfig",
    "PROVIDERS",
    "ProviderInfo",
    "get_provider",
    "list_providers",
    "resolve_provider_token",
]
