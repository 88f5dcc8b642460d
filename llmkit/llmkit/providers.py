"""Provider registry: base URLs, default models and token lookup per model provider."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderInfo:
    """Metadata for a model provider known to the agent runtime."""

    name: str
    api_base: str | None  # None = use litellm default
    env_key: str  # environment variable for the API key
    default_model: str
    model_prefix: str = ""  # litellm routing prefix, e.g. "openrouter/"
    token_keys: tuple[str, ...] = ()  # character secrets / env names, in lookup order

    def qualify(self, model: str) -> str:
        """Return *model* with this provider's litellm prefix applied once."""
        if not self.model_prefix or model.startswith(self.model_prefix):
            return model
        return f"{self.model_prefix}{model}"


_OPENAI = ProviderInfo(
    name="openai",
    api_base=None,
    env_key="OPENAI_API_KEY",
    default_model="openai/gpt-4o-mini",
    token_keys=("OPENAI_API_KEY",),
)

_ANTHROPIC = ProviderInfo(
    name="anthropic",
    api_base=None,
    env_key="ANTHROPIC_API_KEY",
    default_model="anthropic/claude-3-5-sonnet-20241022",
    token_keys=("ANTHROPIC_API_KEY", "CLAUDE_API_KEY"),
)

_OPENROUTER = ProviderInfo(
    name="openrouter",
    api_base=None,
    env_key="OPENROUTER_API_KEY",
    default_model="openrouter/openai/gpt-4o-mini",
    model_prefix="openrouter/",
    token_keys=("OPENROUTER", "OPENROUTER_API_KEY"),
)

_GROQ = ProviderInfo(
    name="groq",
    api_base=None,
    env_key="GROQ_API_KEY",
    default_model="groq/llama-3.1-70b-versatile",
    model_prefix="groq/",
    token_keys=("GROQ_API_KEY",),
)

_GROK = ProviderInfo(
    name="grok",
    api_base="https://api.x.ai/v1",
    env_key="GROK_API_KEY",
    default_model="openai/grok-beta",
    token_keys=("GROK_API_KEY",),
)

# llama_cloud tokens historically lived under several vendor names.
_LLAMA_CLOUD = ProviderInfo(
    name="llama_cloud",
    api_base="https://api.together.xyz/v1",
    env_key="TOGETHER_API_KEY",
    default_model="together_ai/meta-llama/Llama-3.3-70B-Instruct-Turbo",
    token_keys=(
        "LLAMACLOUD_API_KEY",
        "TOGETHER_API_KEY",
        "XAI_API_KEY",
        "OPENAI_API_KEY",
    ),
)

_REDPILL = ProviderInfo(
    name="redpill",
    api_base="https://api.red-pill.ai/v1",
    env_key="REDPILL_API_KEY",
    default_model="openai/gpt-4o-mini",
    token_keys=("REDPILL_API_KEY",),
)

_HEURIST = ProviderInfo(
    name="heurist",
    api_base="https://llm-gateway.heurist.xyz",
    env_key="HEURIST_API_KEY",
    default_model="openai/meta-llama/llama-3-70b-instruct",
    token_keys=("HEURIST_API_KEY",),
)

PROVIDERS: dict[str, ProviderInfo] = {
    p.name: p
    for p in [
        _OPENAI, _ANTHROPIC, _OPENROUTER, _GROQ, _GROK,
        _LLAMA_CLOUD, _REDPILL, _HEURIST,
    ]
}


def get_provider(name: str) -> ProviderInfo | None:
    """Look up a provider by name (case-insensitive)."""
    return PROVIDERS.get(name.lower())


def list_providers() -> list[str]:
    """Return all registered provider names."""
    return list(PROVIDERS.keys())


def resolve_provider_token(
    provider: str,
    secrets: Mapping[str, str] | None = None,
    env: Mapping[str, str] | None = None,
) -> str | None:
    """Find the API token an agent should use for *provider*.

    Each key in the provider's ``token_keys`` is tried in order, first in the
    character's ``settings.secrets`` and then in the process environment.
    Returns ``None`` for unknown providers or when nothing is set.
    """
    info = get_provider(provider) if provider else None
    if info is None:
        return None
    secrets = secrets or {}
    env = os.environ if env is None else env
    for key in info.token_keys:
        value = secrets.get(key) or env.get(key)
        if value:
            return value
    return None
