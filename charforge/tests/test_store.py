"""Tests for the file-based character store."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from charforge.models import CharacterDocument
from charforge.store import CharacterNotFoundError, CharacterStore, slugify


class TestSlugify:
    def test_simple(self) -> None:
        assert slugify("Luna") == "luna"

    def test_spaces_and_symbols(self) -> None:
        assert slugify("Captain Nova!") == "captain_nova"

    def test_path_traversal(self) -> None:
        assert "/" not in slugify("../../etc/passwd")

    def test_empty(self) -> None:
        assert slugify("  ") == "character"


class TestCharacterStore:
    def test_save_and_load(self, tmp_path: Path) -> None:
        store = CharacterStore(tmp_path / "characters")
        doc = CharacterDocument.model_validate(
            {"name": "Luna", "bio": ["Astronomer."], "messageExamples": [], "id": "abc"}
        )
        path = store.save(doc)

        assert path == tmp_path / "characters" / "luna.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["name"] == "Luna"
        assert data["id"] == "abc"
        assert "messageExamples" in data

        loaded = store.load("Luna")
        assert loaded.to_json() == doc.to_json()

    def test_load_missing(self, tmp_path: Path) -> None:
        store = CharacterStore(tmp_path)
        with pytest.raises(CharacterNotFoundError, match="Character 'Ghost' not found"):
            store.load("Ghost")

    def test_read_rejects_non_object(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            CharacterStore.read(path)

    def test_read_fills_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "partial.json"
        path.write_text('{"name": "Bare", "knowledge": ["kept as is"]}', encoding="utf-8")
        doc = CharacterStore.read(path)
        assert doc.bio == []
        assert doc.knowledge == ["kept as is"]

    def test_list_names(self, tmp_path: Path) -> None:
        store = CharacterStore(tmp_path)
        assert store.list_names() == []
        store.save(CharacterDocument(name="Zed"))
        store.save(CharacterDocument(name="Ada"))
        assert store.list_names() == ["ada", "zed"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        store = CharacterStore(tmp_path / "nope")
        assert store.list_names() == []
        assert store.latest() is None

    def test_latest_by_mtime(self, tmp_path: Path) -> None:
        store = CharacterStore(tmp_path)
        older = store.save(CharacterDocument(name="Older"))
        newer = store.save(CharacterDocument(name="Newer"))
        os.utime(older, (2_000_000_000, 2_000_000_000))
        os.utime(newer, (1_000_000_000, 1_000_000_000))
        assert store.latest() == older

    def test_unnamed_characters_get_separate_files(self, tmp_path: Path) -> None:
        store = CharacterStore(tmp_path)
        first = store.save(CharacterDocument(bio=["first"]))
        second = store.save(CharacterDocument(bio=["second"]))

        assert first.name == "character.json"
        assert second.name == "character-2.json"
        assert CharacterStore.read(first).bio == ["first"]
        assert CharacterStore.read(second).bio == ["second"]

    def test_colliding_slugs_do_not_overwrite(self, tmp_path: Path) -> None:
        store = CharacterStore(tmp_path)
        store.save(CharacterDocument(name="Luna!", bio=["exclaimed"]))
        path = store.save(CharacterDocument(name="luna", bio=["quiet"]))

        assert path.name == "luna-2.json"
        assert store.load("Luna!").bio == ["exclaimed"]
        assert store.load("luna").bio == ["quiet"]

    def test_same_name_updates_in_place(self, tmp_path: Path) -> None:
        store = CharacterStore(tmp_path)
        first = store.save(CharacterDocument(name="Luna", bio=["old"]))
        second = store.save(CharacterDocument(name="Luna", bio=["new"]))

        assert first == second
        assert store.list_names() == ["luna"]
        assert store.load("Luna").bio == ["new"]

    def test_load_by_numbered_stem(self, tmp_path: Path) -> None:
        store = CharacterStore(tmp_path)
        store.save(CharacterDocument(bio=["first"]))
        store.save(CharacterDocument(bio=["second"]))
        assert store.load("character-2").bio == ["second"]
