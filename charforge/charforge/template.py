"""Name resolution and the document skeleton shown to the model."""

from __future__ import annotations

import re
from typing import Any

from charforge.models import CharacterDocument, GenerationMode

# "name is Luna", "Name: Captain Nova", "her name Bob." -- the keyword is
# case-insensitive, the captured words must be capitalized.
_NAME_RE = re.compile(
    r"\b(?i:name)\b(?:\s+(?i:is)\b)?\s*:?\s*"
    r"([A-Z][a-zA-Z]*(?:[ \t]+[A-Z][a-zA-Z]*)*)"
    r"(?=[.,!?;:]|\s|$)"
)


def extract_name(instructions: str) -> str | None:
    """Return the character name stated in *instructions*, if any."""
    match = _NAME_RE.search(instructions)
    return match.group(1).strip() if match else None


def resolve_name(instructions: str, baseline: CharacterDocument | None = None) -> str:
    """Prefer a name stated in *instructions*, else keep the baseline's name."""
    explicit = extract_name(instructions)
    if explicit:
        return explicit
    return baseline.name if baseline is not None else ""


def build_template(
    mode: GenerationMode,
    name: str,
    baseline: CharacterDocument | None = None,
) -> dict[str, Any]:
    """Return the document shape the model is asked to fill in.

    In ``REFINE`` mode the runtime wiring (clients, provider, settings,
    plugins, people) and any existing knowledge come from *baseline*.
    """
    prior = baseline.to_json() if mode is GenerationMode.REFINE and baseline else {}
    return {
        "name": name,
        "clients": prior.get("clients", []),
        "modelProvider": prior.get("modelProvider", ""),
        "settings": prior.get("settings") or {"secrets": {}, "voice": {"model": ""}},
        "plugins": prior.get("plugins", []),
        "bio": [],
        "lore": [],
        "knowledge": prior.get("knowledge", []),
        "messageExamples": [],
        "postExamples": [],
        "topics": [],
        "style": {"all": [], "chat": [], "post": []},
        "adjectives": [],
        "people": prior.get("people", []),
    }
