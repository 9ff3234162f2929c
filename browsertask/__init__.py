"""browsertask - MCP adapter for an external browser automation backend.

Exposes a single MCP tool, ``execute_browser_task``, over stdio and forwards
each task description to a configured backend program.
"""

__version__ = "0.1.0"
