"""Backend runner: builds the backend command line and executes it."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from pathlib import Path

from browsertask.config import BackendConfig
from browsertask.schemas import TaskOutcome

logger = logging.getLogger(__name__)


class TaskExecutionError(Exception):
    """Raised when the backend fails to start, exits non-zero, or times out."""

    def __init__(self, message: str, outcome: TaskOutcome | None = None):
        super().__init__(message)
        self.outcome = outcome


def _resolve_executable(config: BackendConfig) -> str:
    """Prefer the venv's copy of a bare executable name."""
    executable = config.executable
    if config.venv is None or os.sep in executable:
        return executable
    candidate = Path(config.venv) / "bin" / executable
    if candidate.exists():
        return str(candidate)
    return executable


def build_command(config: BackendConfig, task: str) -> list[str]:
    """Build the backend argument vector for a task.

    The task text is passed as a single argument, unmodified; no shell sees it.
    """
    command = [_resolve_executable(config)]
    if config.script is not None:
        command.append(config.script)
    command.extend(config.extra_args)
    command.extend(["--task", task])
    return command


def build_env(config: BackendConfig, base: dict[str, str] | None = None) -> dict[str, str]:
    """Build the backend environment, activating the venv if configured."""
    env = dict(os.environ if base is None else base)
    if config.venv is None:
        return env

    venv = str(config.venv)
    env["VIRTUAL_ENV"] = venv
    bin_dir = os.path.join(venv, "bin")
    path = env.get("PATH")
    env["PATH"] = f"{bin_dir}{os.pathsep}{path}" if path else bin_dir
    env.pop("PYTHONHOME", None)
    return env


def render_command(command: list[str]) -> str:
    """Shell-quoted rendering of a command, for logs and display."""
    return shlex.join(command)


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


class BackendRunner:
    """Runs tasks against the configured backend, one process per task."""

    def __init__(self, config: BackendConfig):
        self.config = config
        self._running: set[asyncio.subprocess.Process] = set()

    @property
    def running(self) -> int:
        """Number of backend processes currently alive."""
        return len(self._running)

    async def run(self, task: str) -> TaskOutcome:
        """Execute one task and wait for the backend to finish.

        Args:
            task: Free-text task description passed as ``--task``

        Returns:
            TaskOutcome for a zero exit status

        Raises:
            TaskExecutionError: Spawn failure, non-zero exit, or timeout
        """
        command = build_command(self.config, task)
        logger.info(f"Executing backend: {render_command(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.config.work_dir),
                env=build_env(self.config),
            )
        except OSError as e:
            raise TaskExecutionError(f"Failed to start backend: {e}") from e

        self._running.add(process)
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.config.timeout
            )
        except asyncio.TimeoutError:
            _kill(process)
            await process.wait()
            raise TaskExecutionError(
                f"Backend timed out after {self.config.timeout} seconds"
            ) from None
        except asyncio.CancelledError:
            _kill(process)
            raise
        finally:
            self._running.discard(process)

        outcome = TaskOutcome(
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            exit_code=process.returncode,
            command=command,
        )

        if outcome.exit_code != 0:
            message = f"Backend exited with code {outcome.exit_code}"
            if outcome.stderr.strip():
                message += f": {outcome.stderr.strip()}"
            raise TaskExecutionError(message, outcome)

        return outcome

    def terminate_all(self) -> int:
        """Kill every backend process still running. Returns how many."""
        processes = list(self._running)
        for process in processes:
            _kill(process)
        if processes:
            logger.warning(f"Killed {len(processes)} running backend process(es)")
        return len(processes)
