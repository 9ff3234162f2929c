"""Pytest configuration and fixtures for browsertask tests."""

import sys
from pathlib import Path

import pytest

from browsertask.config import BackendConfig


# Stand-in for the automation backend: behaviour is picked by the task text.
FAKE_BACKEND = '''"""Fake browser automation backend."""
import argparse
import sys
import time

parser = argparse.ArgumentParser()
parser.add_argument("--task", required=True)
parser.add_argument("--flag", action="append", default=[])
args = parser.parse_args()

if args.task == "silent":
    pass
elif args.task == "warn":
    print("careful", file=sys.stderr)
    print("done", end="")
elif args.task == "fail":
    print("partial", end="")
    print("boom", file=sys.stderr)
    sys.exit(3)
elif args.task == "sleep":
    time.sleep(30)
elif args.task == "flags":
    print(",".join(args.flag), end="")
else:
    print(args.task, end="")
'''


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def backend_dir(tmp_path: Path) -> Path:
    """Directory holding a fake backend script named app.py."""
    workspace = tmp_path / "backend"
    workspace.mkdir()
    (workspace / "app.py").write_text(FAKE_BACKEND)
    return workspace


@pytest.fixture
def backend_config(backend_dir: Path) -> BackendConfig:
    """Validated config that runs the fake backend with this interpreter."""
    return BackendConfig(
        work_dir=backend_dir,
        executable=sys.executable,
        script="app.py",
    ).check()


@pytest.fixture
def fake_venv(backend_dir: Path) -> Path:
    """Minimal virtual environment layout with a bin/python entry."""
    venv = backend_dir / ".venv"
    (venv / "bin").mkdir(parents=True)
    (venv / "bin" / "python").write_text("#!/bin/sh\n")
    return venv
