"""Backend configuration for the browser task adapter."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class ConfigError(Exception):
    """Raised when the backend configuration is invalid."""

    pass


class BackendConfig(BaseModel):
    """How to launch the automation backend for a task.

    The backend is started as ``executable [script] [extra_args...] --task <task>``
    inside ``work_dir``, with ``venv`` activated when given.
    """

    work_dir: Path = Field(
        default_factory=Path.cwd,
        description="Directory the backend runs in",
    )
    venv: Path | None = Field(
        default=None,
        description="Virtual environment to activate before launching the backend",
    )
    executable: str = Field(
        default="python",
        min_length=1,
        description="Program to run (resolved against the activated PATH)",
    )
    script: str | None = Field(
        default="app.py",
        description="Script passed as first argument, relative to work_dir",
    )
    extra_args: list[str] = Field(
        default_factory=list,
        description="Arguments placed before --task",
    )
    timeout: float | None = Field(
        default=None,
        description="Seconds to wait for the backend; None waits forever",
    )

    model_config = {"frozen": True}

    def check(self) -> BackendConfig:
        """Validate paths and limits, returning a copy with resolved paths.

        Raises:
            ConfigError: If any setting cannot work.
        """
        work_dir = self.work_dir.expanduser().resolve()
        if not work_dir.is_dir():
            raise ConfigError(f"Working directory does not exist: {work_dir}")

        venv = None
        if self.venv is not None:
            venv = self.venv.expanduser()
            if not venv.is_absolute():
                venv = work_dir / venv
            venv = venv.resolve()
            if not (venv / "bin").is_dir():
                raise ConfigError(f"Not a virtual environment (missing bin/): {venv}")

        if self.script is not None and not (work_dir / self.script).is_file():
            raise ConfigError(f"Backend script not found: {work_dir / self.script}")

        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError(f"Timeout must be positive, got {self.timeout}")

        return self.model_copy(update={"work_dir": work_dir, "venv": venv})
