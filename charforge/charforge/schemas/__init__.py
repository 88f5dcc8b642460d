"""Structural validation of extracted character data."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from charforge.errors import CharforgeError

# Fields a generation must contain; their absence means the model went
# off-template and the request should be retried upstream, not defaulted.
REQUIRED_FIELDS: tuple[str, ...] = (
    "bio",
    "lore",
    "topics",
    "style",
    "adjectives",
    "messageExamples",
    "postExamples",
)


class ValidationError(CharforgeError):
    """Raised when extracted character data lacks required top-level fields."""

    def __init__(self, missing_fields: list[str]) -> None:
        self.missing_fields = missing_fields
        super().__init__(
            f"Invalid character data: missing {', '.join(missing_fields)}"
        )


def _is_missing(value: Any) -> bool:
    """An empty container counts as present; ``None`` and empty scalars do not."""
    if isinstance(value, (list, dict)):
        return False
    return value is None or value is False or value == "" or value == 0


def find_missing_fields(data: Mapping[str, Any]) -> list[str]:
    """Return required fields absent from *data*, in ``REQUIRED_FIELDS`` order."""
    return [name for name in REQUIRED_FIELDS if _is_missing(data.get(name))]


def validate_required(data: Mapping[str, Any]) -> None:
    """Raise :class:`ValidationError` unless every required field is present."""
    missing = find_missing_fields(data)
    if missing:
        raise ValidationError(missing)
