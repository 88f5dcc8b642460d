"""Configuration for charforge."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from llmkit import LLMConfig


def _default_agent_dir() -> str:
    return str(Path.home() / "eliza-idle" / "eliza")


@dataclass(frozen=True)
class Config:
    """Runtime configuration, populated from environment variables."""

    llm: LLMConfig = LLMConfig()
    characters_dir: str = "characters"
    agent_dir: str = field(default_factory=_default_agent_dir)
    agent_script: str = "setup.sh"
    named_agent_script: str = "start_eliza.sh"
    agent_url: str = "http://localhost:3000"
    launch_grace_period: float = 20.0
    host: str = "0.0.0.0"
    port: int = 4001

    @classmethod
    def from_env(cls) -> Config:
        return cls(
            llm=LLMConfig.from_env(),
            characters_dir=os.environ.get("CHARFORGE_CHARACTERS_DIR", cls.characters_dir),
            agent_dir=os.environ.get("CHARFORGE_AGENT_DIR") or _default_agent_dir(),
            agent_script=os.environ.get("CHARFORGE_AGENT_SCRIPT", cls.agent_script),
            named_agent_script=os.environ.get(
                "CHARFORGE_NAMED_AGENT_SCRIPT", cls.named_agent_script
            ),
            agent_url=os.environ.get("CHARFORGE_AGENT_URL", cls.agent_url),
            launch_grace_period=float(
                os.environ.get("CHARFORGE_LAUNCH_GRACE", str(cls.launch_grace_period))
            ),
            host=os.environ.get("HOST", cls.host),
            port=int(os.environ.get("PORT", str(cls.port))),
        )
