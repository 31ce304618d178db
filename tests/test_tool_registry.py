"""
Tests for tool_registry.py and the tool catalog

Run with: python -m pytest tests/test_tool_registry.py -v
"""

import asyncio
from dataclasses import replace

import pytest
from pydantic import Field

from intellicode_mcp.errors import (
    CallDepthExceededError,
    DuplicateToolError,
    InvalidArgumentsError,
    ToolNotFoundError,
)
from intellicode_mcp.models import ToolRequest
from intellicode_mcp.tool_registry import ToolDescriptor, ToolRegistry, ToolRouter
from intellicode_mcp.tools import TOOL_CATALOG, build_registry


class EchoRequest(ToolRequest):
    text: str = Field(..., min_length=1)


async def echo(request, ctx):
    return {"echo": request.text, "depth": ctx.depth}


def make_router(max_call_depth=16, **handlers):
    registry = ToolRegistry()
    registry.register(ToolDescriptor("echo", "Echo text back", EchoRequest, echo))
    for name, handler in handlers.items():
        registry.register(ToolDescriptor(name, name, ToolRequest, handler))
    return ToolRouter(registry, max_call_depth=max_call_depth)


class TestToolRegistry:
    """Registration and lookup."""

    def test_duplicate_registration_fails(self):
        registry = ToolRegistry()
        registry.register(ToolDescriptor("echo", "", EchoRequest, echo))
        with pytest.raises(DuplicateToolError):
            registry.register(ToolDescriptor("echo", "other", EchoRequest, echo))

    def test_unknown_tool(self):
        with pytest.raises(ToolNotFoundError) as exc:
            ToolRegistry().get("missing")
        assert str(exc.value) == "Tool 'missing' not found or does not have a handler."

    def test_schema_comes_from_request_model(self):
        descriptor = ToolDescriptor("echo", "", EchoRequest, echo)
        schema = descriptor.schema()
        assert schema["required"] == ["text"]
        assert "text" in schema["properties"]

    def test_explicit_schema_wins(self):
        descriptor = ToolDescriptor("echo", "", EchoRequest, echo, input_schema={"type": "object"})
        assert descriptor.schema() == {"type": "object"}


class TestToolRouter:
    """Invocation, validation and nesting."""

    def test_invokes_handler_with_typed_request(self):
        router = make_router()
        assert asyncio.run(router.invoke("echo", {"text": "hi"})) == {"echo": "hi", "depth": 1}

    def test_unknown_tool_raises(self):
        with pytest.raises(ToolNotFoundError):
            asyncio.run(make_router().invoke("nope", {}))

    def test_invalid_arguments_never_reach_handler(self):
        called = []

        async def record(request, ctx):
            called.append(request)

        registry = ToolRegistry()
        registry.register(ToolDescriptor("echo", "", EchoRequest, record))
        router = ToolRouter(registry)

        with pytest.raises(InvalidArgumentsError) as exc:
            asyncio.run(router.invoke("echo", {}))
        assert "text" in str(exc.value)
        assert called == []

    def test_handler_errors_propagate_unmodified(self):
        boom = ValueError("boom")

        async def fail(request, ctx):
            raise boom

        with pytest.raises(ValueError) as exc:
            asyncio.run(make_router(fail=fail).invoke("fail", {}))
        assert exc.value is boom

    def test_nested_call_through_context(self):
        async def outer(request, ctx):
            inner = await ctx.call("echo", {"text": "nested"})
            return {"outer_depth": ctx.depth, "inner": inner}

        result = asyncio.run(make_router(outer=outer).invoke("outer", {}))
        assert result == {"outer_depth": 1, "inner": {"echo": "nested", "depth": 2}}

    def test_nested_invalid_arguments(self):
        async def outer(request, ctx):
            return await ctx.call("echo", {"text": ""})

        with pytest.raises(InvalidArgumentsError):
            asyncio.run(make_router(outer=outer).invoke("outer", {}))

    def test_self_recursion_hits_depth_limit(self):
        calls = []

        async def loop(request, ctx):
            calls.append(ctx.depth)
            return await ctx.call("loop", {})

        with pytest.raises(CallDepthExceededError):
            asyncio.run(make_router(max_call_depth=4, loop=loop).invoke("loop", {}))
        assert calls == [1, 2, 3, 4]


class TestToolCatalog:
    """The production registry."""

    def test_all_tools_registered(self, config):
        registry = build_registry(config)
        assert sorted(registry.names()) == sorted(TOOL_CATALOG)
        assert len(registry) == 11

    def test_sequential_thinking_can_be_disabled(self, config):
        thinking = replace(config.integrations.sequential_thinking, enabled=False)
        disabled = replace(config, integrations=replace(config.integrations, sequential_thinking=thinking))
        registry = build_registry(disabled)
        assert "sequential_thinking_process" not in registry
        with pytest.raises(ToolNotFoundError):
            registry.get("sequential_thinking_process")

    def test_handler_override_keeps_request_model(self, config, mcp):
        registry = build_registry(config, handlers=mcp.handlers())
        assert registry.get("eslint_analysis").request_model is TOOL_CATALOG["eslint_analysis"][1]

    def test_every_tool_has_object_schema(self, config):
        for descriptor in build_registry(config).descriptors():
            assert descriptor.schema()["type"] == "object"
