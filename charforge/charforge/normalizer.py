"""Turn extracted (possibly partial) character data into a complete document.

Optional sequence fields are defaulted to empty lists, knowledge entries are
canonicalized to terminated sentences, and during a refinement the baseline's
accumulated knowledge is carried over verbatim. Required fields are checked
first and never defaulted.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from charforge.models import CharacterDocument, GenerationMode
from charforge.schemas import validate_required

logger = logging.getLogger(__name__)

INVALID_KNOWLEDGE_ENTRY = "Invalid knowledge entry."

_SEQUENCE_FIELDS: tuple[str, ...] = (
    "bio",
    "lore",
    "topics",
    "messageExamples",
    "postExamples",
    "adjectives",
    "people",
)
_STYLE_KEYS: tuple[str, ...] = ("all", "chat", "post")
_KNOWLEDGE_TEXT_KEYS: tuple[str, ...] = ("text", "content", "value")
# Python names of aliased fields; only the wire spelling is accepted as input.
_SHADOWED_KEYS: frozenset[str] = frozenset(
    name
    for name, info in CharacterDocument.model_fields.items()
    if info.alias and info.alias != name
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def as_list(value: Any) -> list[Any]:
    """Return *value* if it is a list, otherwise an empty list."""
    return list(value) if isinstance(value, list) else []


def terminate_sentence(text: str) -> str:
    return text if text.endswith(".") else f"{text}."


def _knowledge_text(entry: Mapping[str, Any]) -> str | None:
    """First textual value among ``text``/``content``/``value``, if any."""
    for key in _KNOWLEDGE_TEXT_KEYS:
        value = entry.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, str) and value:
            return value
        if isinstance(value, (int, float)):
            return str(value)
    return None


def canonicalize_knowledge_entry(entry: Any) -> str:
    """Resolve a plain or structured knowledge entry to a terminated sentence."""
    if isinstance(entry, str):
        return terminate_sentence(entry)
    if isinstance(entry, Mapping):
        text = _knowledge_text(entry)
        if text is not None:
            return terminate_sentence(text)
    return INVALID_KNOWLEDGE_ENTRY


def canonicalize_knowledge(entries: Any) -> list[str]:
    return [canonicalize_knowledge_entry(e) for e in as_list(entries)]


def _normalize_style(value: Any) -> dict[str, list[Any]]:
    style = value if isinstance(value, Mapping) else {}
    return {key: as_list(style.get(key)) for key in _STYLE_KEYS}


def _normalize_settings(value: Any) -> dict[str, Any]:
    """Ensure ``secrets`` (str -> str) and ``voice.model`` exist, keep other keys."""
    settings = dict(value) if isinstance(value, Mapping) else {}

    secrets = settings.get("secrets")
    settings["secrets"] = (
        {str(k): str(v) for k, v in secrets.items() if v is not None}
        if isinstance(secrets, Mapping)
        else {}
    )

    voice = dict(settings["voice"]) if isinstance(settings.get("voice"), Mapping) else {}
    if not isinstance(voice.get("model"), str):
        voice["model"] = ""
    settings["voice"] = voice
    return settings


def _baseline_dict(baseline: CharacterDocument | Mapping[str, Any] | None) -> dict[str, Any]:
    if baseline is None:
        return {}
    if isinstance(baseline, CharacterDocument):
        return baseline.to_json()
    return dict(baseline)


def _prefer(extracted: Any, fallback: Any, *, kind: type) -> Any:
    """Use *extracted* when it has the right type and is non-empty, else *fallback*."""
    if isinstance(extracted, kind) and extracted:
        return extracted
    return fallback


def _assemble(
    data: Mapping[str, Any],
    fallback: Mapping[str, Any],
    knowledge: list[str],
) -> CharacterDocument:
    """Build a document from *data*, taking identity and wiring from *fallback*."""
    data = copy.deepcopy(dict(data))
    fallback = copy.deepcopy(dict(fallback))
    payload: dict[str, Any] = {
        key: value for key, value in data.items() if key not in _SHADOWED_KEYS
    }
    payload.update(
        name=_prefer(data.get("name"), fallback.get("name") or "", kind=str),
        modelProvider=_prefer(
            data.get("modelProvider"), fallback.get("modelProvider") or "", kind=str
        ),
        clients=_prefer(data.get("clients"), as_list(fallback.get("clients")), kind=list),
        plugins=_prefer(data.get("plugins"), as_list(fallback.get("plugins")), kind=list),
        settings=_normalize_settings(
            _prefer(data.get("settings"), fallback.get("settings"), kind=Mapping)
        ),
        knowledge=knowledge,
        style=_normalize_style(data.get("style")),
    )
    for field_name in _SEQUENCE_FIELDS:
        payload[field_name] = as_list(data.get(field_name))
    return CharacterDocument.model_validate(payload)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize(
    extracted: Mapping[str, Any],
    baseline: CharacterDocument | Mapping[str, Any] | None = None,
    mode: GenerationMode = GenerationMode.GENERATE,
) -> CharacterDocument:
    """Produce a complete :class:`CharacterDocument` from *extracted*.

    Parameters
    ----------
    extracted:
        The object recovered from model output. It is not modified.
    baseline:
        The document being refined. Only consulted in ``REFINE`` mode.
    mode:
        ``GENERATE`` for a fresh document, ``REFINE`` to inherit sticky
        fields from *baseline*.

    Raises
    ------
    charforge.schemas.ValidationError
        If any of the required fields is missing from *extracted*.
    """
    validate_required(extracted)

    prior = _baseline_dict(baseline) if mode is GenerationMode.REFINE else {}
    prior_knowledge = prior.get("knowledge")
    has_existing_knowledge = isinstance(prior_knowledge, list) and len(prior_knowledge) > 0

    knowledge = canonicalize_knowledge(extracted.get("knowledge"))
    if has_existing_knowledge:
        if knowledge != prior_knowledge:
            logger.info(
                "Keeping %d existing knowledge entries, discarding %d from model output",
                len(prior_knowledge),
                len(knowledge),
            )
        knowledge = _keep_knowledge(prior_knowledge)

    return _assemble(extracted, prior, knowledge)


def _keep_knowledge(entries: Any) -> list[str]:
    """Strings verbatim; structured entries resolved to their text."""
    return [
        entry if isinstance(entry, str) else canonicalize_knowledge_entry(entry)
        for entry in as_list(entries)
    ]


def coerce_document(data: Mapping[str, Any]) -> CharacterDocument:
    """Leniently turn stored or client-supplied character data into a document.

    Unlike :func:`normalize` there is no required-field gate, and plain string
    knowledge entries are kept exactly as given.
    """
    return _assemble(data, {}, _keep_knowledge(data.get("knowledge")))
