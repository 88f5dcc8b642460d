"""Recover a JSON object from raw LLM completion text.

Models are told to answer with bare JSON but routinely wrap it in prose or
code fences, or emit near-miss JSON (trailing commas, ``undefined``). The
extractor parses the text directly when it can; otherwise it slices the
outermost ``{ ... }`` span, applies a fixed sequence of textual repairs and
parses again. Anything the repairs cannot fix is reported, never guessed.
"""

from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Any

from charforge.errors import CharforgeError

logger = logging.getLogger(__name__)

_SNIPPET_CHARS = 200

# Applied in order; each one is idempotent.
_REPAIRS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r",\s*}"), "}"),  # trailing comma in object
    (re.compile(r",\s*]"), "]"),  # trailing comma in array
    (re.compile(r"\{\s*\}"), "{}"),
    (re.compile(r"\[\s*\]"), "[]"),
    (re.compile(r'"\s*:\s*undefined'), '": null'),
    (re.compile(r'"\s*:\s*,'), '": null,'),
    (re.compile(r'"\s*:\s*}'), '": null}'),
    (re.compile(r"\s+"), " "),
]


class ExtractionFailure(str, Enum):
    NO_JSON_BOUNDARIES = "no_json_boundaries"
    UNRECOVERABLE_MALFORMED = "unrecoverable_malformed"


class ExtractionError(CharforgeError):
    """Raised when no JSON object can be recovered from model output."""

    def __init__(self, kind: ExtractionFailure, raw: str, detail: str | None = None) -> None:
        self.kind = kind
        self.detail = detail
        self.size = len(raw)
        self.snippet = raw[:_SNIPPET_CHARS]
        if kind is ExtractionFailure.NO_JSON_BOUNDARIES:
            message = "No complete JSON object found in response"
        else:
            message = f"Failed to parse JSON content: {detail}"
        super().__init__(message)


def repair_json_text(text: str) -> str:
    """Apply the textual repairs for common LLM JSON mistakes."""
    for pattern, replacement in _REPAIRS:
        text = pattern.sub(replacement, text)
    return text.strip()


def _slice_object(raw: str) -> str | None:
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return raw[start:end + 1]


def extract(raw: str) -> dict[str, Any]:
    """Return the JSON object contained in *raw*.

    Raises
    ------
    ExtractionError
        ``NO_JSON_BOUNDARIES`` when *raw* has no ``{ ... }`` span,
        ``UNRECOVERABLE_MALFORMED`` when the repaired span still fails to parse.
    """
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Direct parse failed, attempting cleanup")
    else:
        if isinstance(parsed, dict):
            return parsed
        logger.debug("Direct parse produced %s, looking for an object", type(parsed).__name__)

    sliced = _slice_object(raw)
    if sliced is None:
        logger.warning("No JSON object boundaries in model output (%d chars)", len(raw))
        raise ExtractionError(ExtractionFailure.NO_JSON_BOUNDARIES, raw)

    cleaned = repair_json_text(sliced)
    logger.debug("Cleaned JSON content: %s", cleaned)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning("Parse error after cleanup: %s", exc)
        logger.debug("Raw content: %s", raw)
        raise ExtractionError(
            ExtractionFailure.UNRECOVERABLE_MALFORMED, raw, detail=str(exc)
        ) from exc

    # The span starts with "{" and ends with "}", so a successful parse is an object.
    return parsed
