"""Core data models for charforge."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GenerationMode(str, Enum):
    """Whether a document is created from scratch or refined from a baseline."""

    GENERATE = "generate"
    REFINE = "refine"


class VoiceSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    model: str = ""


class CharacterSettings(BaseModel):
    """Runtime settings of a character; ``secrets`` and ``voice`` are always present."""

    model_config = ConfigDict(frozen=True, extra="allow")

    secrets: dict[str, str] = Field(default_factory=dict)
    voice: VoiceSettings = Field(default_factory=VoiceSettings)


class CharacterStyle(BaseModel, frozen=True):
    all: list[Any] = Field(default_factory=list)
    chat: list[Any] = Field(default_factory=list)
    post: list[Any] = Field(default_factory=list)


class CharacterDocument(BaseModel):
    """A complete character configuration as consumed by the agent runtime.

    Field names are snake_case in Python and camelCase on the wire. Keys the
    runtime understands but charforge does not model (``id``, ``system``,
    ``templates`` ...) are carried through untouched.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        protected_namespaces=(),
    )

    # Identity
    name: str = ""
    model_provider: str = Field(default="", alias="modelProvider")

    # Runtime wiring
    clients: list[Any] = Field(default_factory=list)
    plugins: list[Any] = Field(default_factory=list)
    settings: CharacterSettings = Field(default_factory=CharacterSettings)

    # Persona
    bio: list[Any] = Field(default_factory=list)
    lore: list[Any] = Field(default_factory=list)
    knowledge: list[str] = Field(default_factory=list)
    message_examples: list[Any] = Field(default_factory=list, alias="messageExamples")
    post_examples: list[Any] = Field(default_factory=list, alias="postExamples")
    topics: list[Any] = Field(default_factory=list)
    style: CharacterStyle = Field(default_factory=CharacterStyle)
    adjectives: list[Any] = Field(default_factory=list)
    people: list[Any] = Field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        """Return the wire representation (camelCase keys, extras included)."""
        return self.model_dump(by_alias=True, mode="json")


class GenerationResult(BaseModel, frozen=True):
    """A generated or refined character, together with what produced it."""

    character: CharacterDocument
    raw_prompt: str
    raw_response: str

    def to_json(self) -> dict[str, Any]:
        return {
            "character": self.character.to_json(),
            "rawPrompt": self.raw_prompt,
            "rawResponse": self.raw_response,
        }
