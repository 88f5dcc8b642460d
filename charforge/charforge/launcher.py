"""Start and stop the agent runtime as a child process."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import signal
from asyncio.subprocess import PIPE, Process
from dataclasses import dataclass
from pathlib import Path

from charforge.config import Config
from charforge.errors import CharforgeError
from charforge.models import CharacterDocument
from llmkit import get_provider, resolve_provider_token

logger = logging.getLogger(__name__)

_START_TIMEOUT_SEC = 120.0
_DRAIN_TIMEOUT_SEC = 2.0
_READY_MARKERS = ("Chat started", "Server running")
_HARMLESS_STDERR = (
    "ExperimentalWarning",
    "DeprecationWarning",
    "trace-warnings",
    "trace-deprecation",
)
_ANSI_RE = re.compile(r"\x1B\[[0-9;]*[a-zA-Z]")


class AgentLaunchError(CharforgeError):
    """Raised when the runtime start script fails."""

    def __init__(self, message: str, *, exit_code: int | None, stdout: str, stderr: str) -> None:
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message)


@dataclass(frozen=True)
class LaunchResult:
    stdout: str
    stderr: str
    exit_code: int | None  # None while the script is still running


def clean_output(text: str) -> str:
    """Strip ANSI escape sequences and surrounding whitespace."""
    return _ANSI_RE.sub("", text).strip()


def filter_stderr(text: str) -> str:
    """Drop the runtime's routine Node.js warnings from *text*."""
    return "\n".join(
        line for line in text.splitlines()
        if not any(marker in line for marker in _HARMLESS_STDERR)
    )


def provider_env(character: CharacterDocument) -> dict[str, str]:
    """Environment exposing the model token for *character*'s provider, if one is found."""
    info = get_provider(character.model_provider) if character.model_provider else None
    if info is None:
        return {}
    token = resolve_provider_token(info.name, character.settings.secrets)
    return {info.env_key: token} if token else {}


async def _pump(stream: asyncio.StreamReader | None, sink: list[str], label: str) -> None:
    if stream is None:
        return
    async for raw in stream:
        line = raw.decode("utf-8", errors="replace")
        sink.append(line)
        logger.debug("%s: %s", label, line.rstrip())


class AgentLauncher:
    """Runs the agent runtime's shell scripts and keeps track of their processes."""

    def __init__(self, config: Config) -> None:
        self.agent_dir = Path(config.agent_dir).expanduser()
        self.agent_script = config.agent_script
        self.named_agent_script = config.named_agent_script
        self.grace_period = config.launch_grace_period
        self._processes: list[Process] = []
        self._pumps: list[asyncio.Future] = []

    def _env(self, **extra: str) -> dict[str, str]:
        env = dict(os.environ)
        env.update({
            "PATH": f"{os.environ.get('PATH', '')}:/usr/local/bin:/opt/homebrew/bin",
            "TERM": "dumb",
            "NO_COLOR": "1",
            "CI": "true",
            "DEBUG": "true",
        })
        env.update(extra)
        return env

    def _prune(self) -> None:
        """Forget processes that have exited and pumps that have drained."""
        self._processes = [p for p in self._processes if p.returncode is None]
        self._pumps = [f for f in self._pumps if not f.done()]

    async def _spawn(self, *args: str, env: dict[str, str]) -> Process:
        self._prune()
        process = await asyncio.create_subprocess_exec(
            "bash",
            *args,
            cwd=str(self.agent_dir),
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=PIPE,
            stderr=PIPE,
            start_new_session=True,
        )
        self._processes.append(process)
        return process

    async def start(
        self, character_file: str, *, extra_env: dict[str, str] | None = None
    ) -> LaunchResult:
        """Boot the runtime with *character_file* and wait until it looks ready.

        The start script normally backgrounds the runtime and exits; after it
        exits (or the start timeout passes) the launcher waits the configured
        grace period before judging the captured output.
        """
        script = self.agent_dir / self.agent_script
        logger.info("Starting agent runtime: CHARACTER_FILE=%s bash %s start-background",
                    character_file, script)
        env = self._env(CHARACTER_FILE=character_file, **(extra_env or {}))
        process = await self._spawn(str(script), "start-background", env=env)

        stdout: list[str] = []
        stderr: list[str] = []
        pump = asyncio.ensure_future(asyncio.gather(
            _pump(process.stdout, stdout, "STDOUT"),
            _pump(process.stderr, stderr, "STDERR"),
        ))
        self._pumps.append(pump)

        try:
            exit_code: int | None = await asyncio.wait_for(
                process.wait(), timeout=_START_TIMEOUT_SEC
            )
        except asyncio.TimeoutError:
            exit_code = None
        else:
            # Backgrounded children may keep the pipes open.
            await asyncio.wait({pump}, timeout=_DRAIN_TIMEOUT_SEC)
        if self.grace_period > 0:
            await asyncio.sleep(self.grace_period)

        out, err = "".join(stdout), "".join(stderr)
        if exit_code == 0 or any(marker in out for marker in _READY_MARKERS):
            logger.info("Agent runtime started")
            return LaunchResult(stdout=out, stderr=err, exit_code=exit_code)

        logger.error("Agent start script exited with code %s", exit_code)
        raise AgentLaunchError(
            f"Script exited with code {exit_code}\n{err or 'No stderr available'}",
            exit_code=exit_code,
            stdout=out,
            stderr=err,
        )

    async def start_named(self, character_name: str) -> int:
        """Start the runtime for a stored character without waiting for readiness."""
        script = self.agent_dir / self.named_agent_script
        logger.info("Starting agent for character %s", character_name)
        process = await self._spawn(str(script), character_name, env=self._env())
        self._pumps.append(asyncio.ensure_future(asyncio.gather(
            _pump(process.stdout, [], f"{character_name} STDOUT"),
            _pump(process.stderr, [], f"{character_name} STDERR"),
        )))
        return process.pid

    async def stop(self) -> None:
        """Terminate every process this launcher started."""
        for process in self._processes:
            if process.returncode is not None:
                continue
            logger.info("Stopping agent process %d", process.pid)
            # The group may already be gone; the process still has to be reaped.
            with contextlib.suppress(ProcessLookupError):
                os.killpg(process.pid, signal.SIGTERM)
            try:
                await asyncio.wait_for(process.wait(), timeout=5)
            except asyncio.TimeoutError:
                with contextlib.suppress(ProcessLookupError):
                    os.killpg(process.pid, signal.SIGKILL)
                await process.wait()
        for pump in self._pumps:
            pump.cancel()
        self._processes.clear()
        self._pumps.clear()
