"""MCP server exposing the browser task backend."""
