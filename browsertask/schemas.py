"""Pydantic schemas for tool arguments and backend results."""

from __future__ import annotations

from pydantic import BaseModel, Field, StrictStr

TOOL_NAME = "execute_browser_task"


class TaskArguments(BaseModel):
    """Arguments of an ``execute_browser_task`` call."""

    task: StrictStr = Field(..., description="Description of the task to execute")


class TaskOutcome(BaseModel):
    """Result of a finished backend run."""

    stdout: str
    stderr: str
    exit_code: int
    command: list[str]
