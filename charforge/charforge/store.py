"""File-based character store, one JSON document per character."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from charforge.errors import CharforgeError
from charforge.models import CharacterDocument
from charforge.normalizer import coerce_document

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-zA-Z0-9._-]+")


class CharacterNotFoundError(CharforgeError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Character '{name}' not found")


def slugify(name: str) -> str:
    """Filesystem-safe stem for a character name."""
    slug = _SLUG_RE.sub("_", name.strip()).strip("._")
    return slug.lower() or "character"


class CharacterStore:
    """Reads and writes character files inside a single directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, name: str) -> Path:
        return self.directory / f"{slugify(name)}.json"

    @staticmethod
    def _stored_name(path: Path) -> str | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        return data.get("name") if isinstance(data, dict) else None

    def _target(self, name: str) -> Path:
        """Path for *name*, numbered so that other characters are never overwritten.

        A file is reused only when it holds a character with the same
        non-empty name; unnamed characters always get a fresh file.
        """
        stem = slugify(name)
        path = self.path_for(name)
        counter = 2
        while path.exists() and not (name and self._stored_name(path) == name):
            path = self.directory / f"{stem}-{counter}.json"
            counter += 1
        return path

    def save(self, document: CharacterDocument) -> Path:
        """Write *document* as ``<slug>.json`` (or ``<slug>-N.json``) and return its path."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._target(document.name)
        path.write_text(
            json.dumps(document.to_json(), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        logger.info("Saved character %r to %s", document.name, path)
        return path

    def _find(self, name: str) -> Path | None:
        """The file holding *name*, else the file whose stem is *name*."""
        stem = slugify(name)
        path = self.path_for(name)
        fallback = path if path.is_file() else None
        counter = 2
        while path.is_file():
            if self._stored_name(path) == name:
                return path
            path = self.directory / f"{stem}-{counter}.json"
            counter += 1
        return fallback

    def load(self, name: str) -> CharacterDocument:
        """Load the character called *name* (or stored under that file stem)."""
        path = self._find(name)
        if path is None:
            raise CharacterNotFoundError(name)
        return self.read(path)

    @staticmethod
    def read(path: Path) -> CharacterDocument:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{path} does not contain a JSON object")
        return coerce_document(data)

    def list_names(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))

    def latest(self) -> Path | None:
        """Return the most recently modified character file, if any."""
        if not self.directory.is_dir():
            return None
        files = list(self.directory.glob("*.json"))
        if not files:
            return None
        return max(files, key=lambda p: p.stat().st_mtime)
