"""CLI for browsertask - MCP server and one-shot backend runs."""

from __future__ import annotations

import functools
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import Any, Callable

import click

from browsertask import __version__
from browsertask.config import BackendConfig, ConfigError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def backend_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the backend configuration options to a command."""
    options = [
        click.option(
            "--work-dir", "-d",
            default=".",
            type=click.Path(exists=True, file_okay=False, dir_okay=True, resolve_path=True),
            help="Directory the backend runs in (defaults to current directory)",
        ),
        click.option(
            "--venv",
            default=None,
            type=click.Path(file_okay=False, dir_okay=True),
            help="Virtual environment to activate, absolute or relative to --work-dir",
        ),
        click.option(
            "--executable", "-e",
            default="python",
            show_default=True,
            help="Program that runs the backend",
        ),
        click.option(
            "--script", "-s",
            default="app.py",
            show_default=True,
            help="Backend script, relative to --work-dir",
        ),
        click.option(
            "--no-script",
            is_flag=True,
            help="Run the executable without a script argument",
        ),
        click.option(
            "--arg", "extra_args",
            multiple=True,
            help="Extra backend argument placed before --task (repeatable)",
        ),
        click.option(
            "--timeout", "-t",
            default=None,
            type=float,
            help="Seconds to wait for the backend (default: no limit)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_config(
    work_dir: str,
    venv: str | None,
    executable: str,
    script: str,
    no_script: bool,
    extra_args: tuple[str, ...],
    timeout: float | None,
) -> BackendConfig:
    """Build and validate a BackendConfig from CLI options."""
    config = BackendConfig(
        work_dir=Path(work_dir),
        venv=Path(venv) if venv else None,
        executable=executable,
        script=None if no_script else script,
        extra_args=list(extra_args),
        timeout=timeout,
    )
    try:
        return config.check()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def _config_from_kwargs(func: Callable[..., Any]) -> Callable[..., Any]:
    """Collapse the backend options into a single ``config`` argument."""

    @functools.wraps(func)
    def wrapper(
        *args: Any,
        work_dir: str,
        venv: str | None,
        executable: str,
        script: str,
        no_script: bool,
        extra_args: tuple[str, ...],
        timeout: float | None,
        **kwargs: Any,
    ) -> Any:
        config = _build_config(work_dir, venv, executable, script, no_script, extra_args, timeout)
        return func(*args, config=config, **kwargs)

    return wrapper


@click.group()
@click.version_option(version=__version__, prog_name="browsertask")
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (logs go to stderr)",
)
def main(log_level: str) -> None:
    """browsertask - MCP bridge to a browser automation backend.

    Exposes the execute_browser_task tool and forwards each task to an
    external backend program.
    """
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT, stream=sys.stderr)


@main.command()
@backend_options
@_config_from_kwargs
def serve(config: BackendConfig) -> None:
    """Run the MCP server on stdio.

    \b
    Example:
        browsertask serve --work-dir ~/automation --venv .venv
    """
    from mcp_browsertask.server import run

    run(config)


@main.command()
@click.argument("task")
@backend_options
@_config_from_kwargs
def run(task: str, config: BackendConfig) -> None:
    """Run a single TASK on the backend and print its output.

    \b
    Example:
        browsertask run "open example.com and read the title"
    """
    import anyio

    from browsertask.runner import BackendRunner, TaskExecutionError, build_command, render_command

    click.echo(f"$ {render_command(build_command(config, task))}", err=True)

    runner = BackendRunner(config)
    try:
        outcome = anyio.run(runner.run, task)
    except TaskExecutionError as e:
        if e.outcome is not None and e.outcome.stdout:
            click.echo(e.outcome.stdout, nl=False)
        raise click.ClickException(str(e)) from e

    if outcome.stderr:
        click.echo(outcome.stderr, nl=False, err=True)
    click.echo(outcome.stdout, nl=False)


def _serve_args(config: BackendConfig) -> list[str]:
    """CLI arguments that reproduce ``config`` for ``browsertask serve``."""
    args = ["serve", "--work-dir", str(config.work_dir)]
    if config.venv is not None:
        args += ["--venv", str(config.venv)]
    if config.executable != "python":
        args += ["--executable", config.executable]
    if config.script is None:
        args.append("--no-script")
    elif config.script != "app.py":
        args += ["--script", config.script]
    for extra in config.extra_args:
        args.append(f"--arg={extra}")
    if config.timeout is not None:
        args += ["--timeout", str(config.timeout)]
    return args


@main.command()
@click.option(
    "--name", "-n",
    default="browser-use",
    show_default=True,
    help="Server name in .mcp.json",
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Replace an existing entry with the same name",
)
@backend_options
@_config_from_kwargs
def init(name: str, force: bool, config: BackendConfig) -> None:
    """Register the MCP server in ./.mcp.json.

    \b
    Example:
        cd /path/to/project
        browsertask init --work-dir ~/automation --venv .venv
    """
    mcp_json_path = Path.cwd() / ".mcp.json"
    executable = shutil.which("browsertask") or "browsertask"

    server_config = {
        "command": executable,
        "args": _serve_args(config),
    }

    if mcp_json_path.exists():
        try:
            mcp_config = json.loads(mcp_json_path.read_text())
        except json.JSONDecodeError:
            raise click.ClickException(f"{mcp_json_path} is not valid JSON")
    else:
        mcp_config = {}

    servers = mcp_config.setdefault("mcpServers", {})

    if name in servers and not force:
        click.echo(f".mcp.json already has '{name}' config (use --force to replace)")
        return

    servers[name] = server_config
    mcp_json_path.write_text(json.dumps(mcp_config, indent=2) + "\n")
    click.echo(f"Updated .mcp.json with '{name}' MCP server")


if __name__ == "__main__":
    main()
