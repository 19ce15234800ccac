"""MCP server exposing outline import and reimport as tools."""
