"""Tests for the agent runtime launcher (real subprocesses, fake scripts)."""

from __future__ import annotations

import os
import signal
from pathlib import Path
from unittest.mock import patch

import pytest

from charforge.config import Config
from charforge.launcher import (
    AgentLaunchError,
    AgentLauncher,
    clean_output,
    filter_stderr,
    provider_env,
)
from charforge.models import CharacterDocument


def _launcher(tmp_path: Path, script: str, name: str = "setup.sh") -> AgentLauncher:
    (tmp_path / name).write_text(script, encoding="utf-8")
    return AgentLauncher(Config(agent_dir=str(tmp_path), launch_grace_period=0))


class TestOutputHelpers:
    def test_clean_output_strips_ansi(self) -> None:
        assert clean_output("\x1b[32mready\x1b[0m\n") == "ready"

    def test_filter_stderr(self) -> None:
        text = "(node:1) ExperimentalWarning: fetch\nreal problem\nuse --trace-warnings"
        assert filter_stderr(text) == "real problem"


@pytest.mark.asyncio
async def test_start_passes_character_file(tmp_path: Path) -> None:
    launcher = _launcher(tmp_path, 'echo "file=$CHARACTER_FILE mode=$1 term=$TERM"\n')
    result = await launcher.start("/tmp/luna.json")
    assert result.exit_code == 0
    assert "file=/tmp/luna.json mode=start-background term=dumb" in result.stdout


@pytest.mark.asyncio
async def test_start_runs_in_agent_dir(tmp_path: Path) -> None:
    launcher = _launcher(tmp_path, "pwd\n")
    result = await launcher.start("c.json")
    assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()


@pytest.mark.asyncio
async def test_start_failure_raises(tmp_path: Path) -> None:
    launcher = _launcher(tmp_path, 'echo "partial"\necho "boom" >&2\nexit 3\n')
    with pytest.raises(AgentLaunchError) as info:
        await launcher.start("c.json")
    assert info.value.exit_code == 3
    assert "boom" in info.value.stderr
    assert "partial" in info.value.stdout
    assert "Script exited with code 3" in str(info.value)


@pytest.mark.asyncio
async def test_ready_marker_overrides_exit_code(tmp_path: Path) -> None:
    launcher = _launcher(tmp_path, 'echo "Server running on 3000"\nexit 1\n')
    result = await launcher.start("c.json")
    assert result.exit_code == 1
    assert "Server running" in result.stdout


@pytest.mark.asyncio
async def test_start_named_and_stop(tmp_path: Path) -> None:
    launcher = _launcher(tmp_path, "sleep 30\n", name="start_eliza.sh")
    pid = await launcher.start_named("luna")
    assert pid > 0
    process = launcher._processes[0]
    assert process.returncode is None

    await launcher.stop()
    assert process.returncode is not None
    assert launcher._processes == []


@pytest.mark.asyncio
async def test_stop_without_processes() -> None:
    launcher = AgentLauncher(Config(launch_grace_period=0))
    await launcher.stop()


class TestProviderEnv:
    def test_token_from_secrets(self) -> None:
        character = CharacterDocument.model_validate(
            {"modelProvider": "groq", "settings": {"secrets": {"GROQ_API_KEY": "g-1"}}}
        )
        assert provider_env(character) == {"GROQ_API_KEY": "g-1"}

    def test_unknown_provider(self) -> None:
        assert provider_env(CharacterDocument(model_provider="mystery")) == {}

    def test_no_provider(self) -> None:
        assert provider_env(CharacterDocument()) == {}


@pytest.mark.asyncio
async def test_start_exports_extra_env(tmp_path: Path) -> None:
    launcher = _launcher(tmp_path, 'echo "key=$GROQ_API_KEY"\n')
    result = await launcher.start("c.json", extra_env={"GROQ_API_KEY": "g-1"})
    assert "key=g-1" in result.stdout


@pytest.mark.asyncio
async def test_finished_processes_are_forgotten(tmp_path: Path) -> None:
    launcher = _launcher(tmp_path, 'echo "done"\n')
    await launcher.start("a.json")
    await launcher.start("b.json")
    assert len(launcher._processes) == 1
    assert len(launcher._pumps) <= 1


@pytest.mark.asyncio
async def test_stop_reaps_process_whose_group_vanished(tmp_path: Path) -> None:
    launcher = _launcher(tmp_path, "exec sleep 30\n", name="start_eliza.sh")
    await launcher.start_named("luna")
    process = launcher._processes[0]

    def group_already_gone(pid: int, sig: int) -> None:
        os.kill(pid, signal.SIGKILL)
        raise ProcessLookupError

    with patch("charforge.launcher.os.killpg", side_effect=group_already_gone):
        await launcher.stop()

    assert process.returncode is not None
    assert launcher._processes == []
