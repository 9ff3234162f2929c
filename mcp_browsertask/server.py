"""MCP server exposing the browser automation backend as a single tool."""

from __future__ import annotations

import logging
import os
import signal
from typing import Any

import anyio
from anyio.abc import TaskStatus
from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError
from pydantic import ValidationError

from browsertask import __version__
from browsertask.config import BackendConfig
from browsertask.runner import BackendRunner
from browsertask.schemas import TOOL_NAME, TaskArguments

logger = logging.getLogger(__name__)

SERVER_NAME = "browser-use-server"

NO_OUTPUT_TEXT = "Task executed, but no output was produced"
UNKNOWN_ERROR_TEXT = "unknown error"

TOOL = types.Tool(
    name=TOOL_NAME,
    description="Execute a browser automation task",
    inputSchema={
        "type": "object",
        "properties": {
            "task": {
                "type": "string",
                "description": "Description of the task to execute",
            },
        },
        "required": ["task"],
    },
)


class UnknownToolError(Exception):
    """Raised when a call names a tool this server does not provide."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


def _text_result(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "arguments"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class TaskAdapter:
    """Maps tool calls onto backend runs."""

    def __init__(self, runner: BackendRunner):
        self.runner = runner

    def list_tools(self) -> list[types.Tool]:
        return [TOOL]

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> types.CallToolResult:
        """Run the task named in ``arguments`` on the backend.

        Backend failures are reported in the result with ``isError`` set and
        are never raised.

        Raises:
            UnknownToolError: If ``name`` is not the registered tool
            ValidationError: If ``arguments`` has no string ``task``
        """
        if name != TOOL_NAME:
            raise UnknownToolError(name)

        args = TaskArguments.model_validate(arguments or {})

        try:
            outcome = await self.runner.run(args.task)
        except Exception as e:
            logger.error(f"Task execution failed: {e}")
            return _text_result(f"Execution failed: {str(e) or UNKNOWN_ERROR_TEXT}", is_error=True)

        if outcome.stderr:
            logger.warning(f"Backend wrote to stderr: {outcome.stderr.rstrip()}")

        return _text_result(outcome.stdout or NO_OUTPUT_TEXT)

    def shutdown(self) -> None:
        self.runner.terminate_all()


def create_server(adapter: TaskAdapter) -> Server:
    """Build the MCP server and register the list/call handlers."""
    server = Server(SERVER_NAME, version=__version__)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return adapter.list_tools()

    async def handle_call_tool(req: types.CallToolRequest) -> types.ServerResult:
        try:
            result = await adapter.call_tool(req.params.name, req.params.arguments)
        except UnknownToolError as e:
            logger.warning(str(e))
            raise McpError(types.ErrorData(code=types.METHOD_NOT_FOUND, message=str(e))) from e
        except ValidationError as e:
            message = f"Invalid arguments for {TOOL_NAME}: {_describe_validation_error(e)}"
            logger.warning(message)
            raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message=message)) from e
        return types.ServerResult(result)

    # Registered directly: the SDK's call_tool decorator would turn these
    # McpErrors into isError results instead of protocol errors.
    server.request_handlers[types.CallToolRequest] = handle_call_tool

    return server


async def _watch_signals(
    adapter: TaskAdapter,
    *,
    task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        task_status.started()
        async for signum in signals:
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
            adapter.shutdown()
            logging.shutdown()
            # The stdin reader thread cannot be cancelled; exit without joining it.
            os._exit(0)


async def serve(server: Server, adapter: TaskAdapter) -> None:
    """Serve MCP over stdio until stdin closes or a shutdown signal arrives."""
    async with anyio.create_task_group() as tg:
        await tg.start(_watch_signals, adapter)
        async with stdio_server() as (read_stream, write_stream):
            logger.info("Browser Use MCP server running on stdio")
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
        logger.info("stdin closed, shutting down")
        tg.cancel_scope.cancel()


def run(config: BackendConfig) -> None:
    """Run the server for a validated backend configuration."""
    adapter = TaskAdapter(BackendRunner(config))
    server = create_server(adapter)
    anyio.run(serve, server, adapter)
