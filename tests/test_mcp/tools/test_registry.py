"""Tests for ToolSpec and ToolRegistry.

Covers:
- ToolSpec immutability
- Read-only filtering of writing tools
- list_tools, tool_count and call_tool dispatch
- Error translation in call_tool
"""

import dataclasses

import mcp.types as types
import pytest

from outline_sync.errors import ProjectNotFoundError
from outline_sync.mcp.tools import ALL_SPECS
from outline_sync.mcp.tools.registry import ToolContext, ToolRegistry, ToolSpec


def _make_spec(name: str, writes: bool = False, handler=None) -> ToolSpec:
    """Helper to create a ToolSpec for testing."""
    if handler is None:

        async def handler(ctx, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}:{args}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        writes=writes,
        handler=handler,
    )


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


@pytest.fixture
def context(service):
    return ToolContext(service=service)


class TestToolSpec:
    def test_frozen(self):
        spec = _make_spec("a")
        with pytest.raises(dataclasses.FrozenInstanceError):
            spec.writes = True  # type: ignore[misc]


class TestFiltering:
    def test_all_tools_by_default(self):
        registry = ToolRegistry([_make_spec("read"), _make_spec("write", writes=True)])
        assert registry.tool_count() == 2
        assert [t.name for t in registry.list_tools()] == ["read", "write"]

    def test_read_only_hides_writers(self):
        registry = ToolRegistry(
            [_make_spec("read"), _make_spec("write", writes=True)], read_only=True
        )
        assert [t.name for t in registry.list_tools()] == ["read"]

    def test_outline_tools_read_only(self):
        registry = ToolRegistry(ALL_SPECS, read_only=True)
        assert sorted(t.name for t in registry.list_tools()) == [
            "outline_preview",
            "outline_projects",
        ]

    def test_outline_tools_full(self):
        registry = ToolRegistry(ALL_SPECS)
        assert registry.tool_count() == 5


class TestCallTool:
    async def test_dispatch(self, context):
        registry = ToolRegistry([_make_spec("echo")])
        result = await registry.call_tool("echo", {"x": 1}, context)
        assert _text(result) == "ok:echo:{'x': 1}"

    async def test_none_arguments(self, context):
        registry = ToolRegistry([_make_spec("echo")])
        result = await registry.call_tool("echo", None, context)
        assert _text(result) == "ok:echo:{}"

    async def test_unknown_tool(self, context):
        with pytest.raises(ValueError, match="Unknown tool"):
            await ToolRegistry([]).call_tool("missing", {}, context)

    async def test_filtered_tool_unknown(self, context):
        registry = ToolRegistry([_make_spec("write", writes=True)], read_only=True)
        with pytest.raises(ValueError, match="Unknown tool"):
            await registry.call_tool("write", {}, context)

    async def test_package_error_translated(self, context):
        async def handler(ctx, args):
            raise ProjectNotFoundError("p1")

        registry = ToolRegistry([_make_spec("fail", handler=handler)])
        result = await registry.call_tool("fail", {}, context)
        assert result.isError is True
        assert _text(result).startswith("Error (not_found):")

    async def test_value_error_is_validation_error(self, context):
        async def handler(ctx, args):
            raise ValueError("project_id is required")

        registry = ToolRegistry([_make_spec("fail", handler=handler)])
        result = await registry.call_tool("fail", {}, context)
        assert _text(result).startswith("Error (validation_error): project_id is required")

    async def test_unexpected_error_is_server_error(self, context):
        async def handler(ctx, args):
            raise RuntimeError("boom")

        registry = ToolRegistry([_make_spec("fail", handler=handler)])
        result = await registry.call_tool("fail", {}, context)
        assert _text(result).startswith("Error (server_error): boom")
