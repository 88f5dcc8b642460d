"""Shared LLM configuration used by charforge."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

from llmkit.providers import get_provider

_DEFAULT_MODEL = "openrouter/openai/gpt-4o-mini"


@dataclass(frozen=True)
class LLMConfig:
    """LLM connection settings."""

    model: str = _DEFAULT_MODEL
    api_base: str | None = None
    api_key: str | None = None
    provider: str | None = "openrouter"
    app_url: str = "http://localhost:4000"
    app_title: str = "Eliza Character Generator"

    @classmethod
    def from_env(cls) -> LLMConfig:
        """Build config from CHARFORGE_* environment variables."""
        provider_name = os.getenv("CHARFORGE_PROVIDER", cls.provider)
        provider = get_provider(provider_name) if provider_name else None

        model = os.getenv("CHARFORGE_MODEL")
        api_base = os.getenv("CHARFORGE_API_BASE")
        api_key = os.getenv("CHARFORGE_API_KEY")

        if provider and not model:
            model = provider.default_model
        if provider and not api_base:
            api_base = provider.api_base
        if provider and not api_key:
            api_key = os.getenv(provider.env_key)

        return cls(
            model=model or _DEFAULT_MODEL,
            api_base=api_base,
            api_key=api_key,
            provider=provider_name,
            app_url=os.getenv("APP_URL", cls.app_url),
        )

    def with_overrides(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
    ) -> LLMConfig:
        """Return a copy using a per-request *model* and/or *api_key*.

        The model name is qualified with the configured provider's routing
        prefix, so a bare ``openai/gpt-4o-mini`` becomes
        ``openrouter/openai/gpt-4o-mini`` under the default provider.
        """
        changes: dict[str, str] = {}
        if model:
            provider = get_provider(self.provider) if self.provider else None
            changes["model"] = provider.qualify(model) if provider else model
        if api_key:
            changes["api_key"] = api_key
        return replace(self, **changes) if changes else self

    def to_litellm_kwargs(self) -> dict[str, object]:
        """Return kwargs suitable for litellm.acompletion()."""
        kwargs: dict[str, object] = {
            "model": self.model,
            "extra_headers": {
                "HTTP-Referer": self.app_url,
                "X-Title": self.app_title,
            },
        }
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key
        return kwargs
