"""Tests for the CLI entry point."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from charforge.cli import main
from charforge.extractor import ExtractionError, ExtractionFailure
from charforge.models import CharacterDocument, GenerationResult


@pytest.fixture(autouse=True)
def _characters_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    directory = tmp_path / "characters"
    monkeypatch.setenv("CHARFORGE_CHARACTERS_DIR", str(directory))
    monkeypatch.delenv("CHARFORGE_PROVIDER", raising=False)
    for key in ("CHARFORGE_MODEL", "CHARFORGE_API_BASE", "HOST", "PORT"):
        monkeypatch.delenv(key, raising=False)
    return directory


def _result(**fields: object) -> GenerationResult:
    return GenerationResult(
        character=CharacterDocument.model_validate({"name": "Luna", **fields}),
        raw_prompt="p",
        raw_response="{}",
    )


def test_generate_prints_character() -> None:
    runner = CliRunner()
    with patch(
        "charforge.synthesizer.generate_character", new_callable=AsyncMock, return_value=_result()
    ) as mock:
        result = runner.invoke(main, ["generate", "--prompt", "An astronomer", "-m", "openai/gpt-4o"])
    assert result.exit_code == 0, result.output
    assert '"name": "Luna"' in result.output
    assert mock.call_args.kwargs["llm"].model == "openrouter/openai/gpt-4o"


def test_generate_with_provider_and_save(_characters_dir: Path, tmp_path: Path) -> None:
    output = tmp_path / "out.json"
    runner = CliRunner()
    with patch(
        "charforge.synthesizer.generate_character", new_callable=AsyncMock, return_value=_result()
    ) as mock:
        result = runner.invoke(main, [
            "generate", "-p", "x", "--provider", "openai", "-o", str(output), "--save",
        ])
    assert result.exit_code == 0, result.output
    assert json.loads(output.read_text())["name"] == "Luna"
    assert (_characters_dir / "luna.json").is_file()
    assert mock.call_args.kwargs["llm"].model == "openai/gpt-4o-mini"


def test_generate_error_exits() -> None:
    runner = CliRunner()
    error = ExtractionError(ExtractionFailure.NO_JSON_BOUNDARIES, "I cannot help")
    with patch("charforge.synthesizer.generate_character", new_callable=AsyncMock, side_effect=error):
        result = runner.invoke(main, ["generate", "-p", "x"])
    assert result.exit_code == 1
    assert "No complete JSON object" in result.output


def test_unknown_provider() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["generate", "-p", "x", "--provider", "nope"])
    assert result.exit_code == 1
    assert "Unknown provider: nope" in result.output


def test_refine_reads_file(tmp_path: Path) -> None:
    source = tmp_path / "luna.json"
    source.write_text(json.dumps({"name": "Luna", "knowledge": ["A."]}))
    runner = CliRunner()
    with patch(
        "charforge.synthesizer.refine_character",
        new_callable=AsyncMock,
        return_value=_result(knowledge=["A."]),
    ) as mock:
        result = runner.invoke(main, ["refine", str(source), "-p", "Funnier"])
    assert result.exit_code == 0, result.output
    prompt, current = mock.call_args.args
    assert prompt == "Funnier"
    assert current.knowledge == ["A."]


def test_fix_json_from_stdin() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["fix-json"], input='Sure! {"name": "Bob", "bio": [],}')
    assert result.exit_code == 0
    assert json.loads(result.output) == {"name": "Bob", "bio": []}


def test_fix_json_failure() -> None:
    runner = CliRunner()
    result = runner.invoke(main, ["fix-json"], input="I cannot help with that request.")
    assert result.exit_code == 1
    assert "No complete JSON object" in result.output


def test_knowledge(tmp_path: Path) -> None:
    notes = tmp_path / "notes.txt"
    notes.write_text("Luna likes tea. She hates rain!")
    runner = CliRunner()
    result = runner.invoke(main, ["knowledge", str(notes)])
    assert result.exit_code == 0
    assert json.loads(result.output) == ["Luna likes tea.", "She hates rain."]


def test_serve_runs_uvicorn() -> None:
    runner = CliRunner()
    with patch("uvicorn.run") as run:
        result = runner.invoke(main, ["serve", "--port", "5055"])
    assert result.exit_code == 0, result.output
    assert run.call_args.kwargs == {"host": "0.0.0.0", "port": 5055}
