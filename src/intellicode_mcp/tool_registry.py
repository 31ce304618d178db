"""
Tool Registry and Call Router.

The registry maps tool names to descriptors. The router resolves a name,
validates the raw arguments into the tool's request model and awaits the
handler. Each handler gets a ToolContext whose call() is the router's own
invoke bound one level deeper, so any tool can call any other tool by name.

The router is a transparent indirection: handler errors propagate
unmodified, nothing is retried. Nesting is capped by max_call_depth so a
tool that ends up calling itself fails with CallDepthExceededError instead
of exhausting the stack.
"""

from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import ValidationError

from .errors import CallDepthExceededError, DuplicateToolError, InvalidArgumentsError, ToolNotFoundError
from .mcp_logger import log_debug
from .models import ToolRequest

CallFn = Callable[[str, Optional[Dict[str, Any]]], Awaitable[Any]]


@dataclass(frozen=True)
class ToolContext:
    """What a handler receives besides its request."""
    call: CallFn
    depth: int = 0


Handler = Callable[[Any, ToolContext], Awaitable[Any]]


@dataclass(frozen=True)
class ToolDescriptor:
    """A registered tool. Identity is the name."""
    name: str
    description: str
    request_model: Type[ToolRequest]
    handler: Handler
    input_schema: Dict[str, Any] = field(default_factory=dict)

    def schema(self) -> Dict[str, Any]:
        return self.input_schema or self.request_model.model_json_schema()


class ToolRegistry:
    """Name -> descriptor map. Registration is one-shot per name."""

    def __init__(self):
        self._tools: Dict[str, ToolDescriptor] = {}

    def register(self, descriptor: ToolDescriptor) -> None:
        if descriptor.name in self._tools:
            raise DuplicateToolError(descriptor.name)
        self._tools[descriptor.name] = descriptor

    def get(self, name: str) -> ToolDescriptor:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def names(self) -> List[str]:
        return list(self._tools)

    def descriptors(self) -> List[ToolDescriptor]:
        return list(self._tools.values())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def format_validation_error(tool_name: str, error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        msg = str(err.get("msg", "")).replace("Value error, ", "")
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {msg}" if loc else msg)
    return f"Invalid arguments for {tool_name}: " + "; ".join(parts)


class ToolRouter:
    """Invokes registered tools by name, passing itself to each handler."""

    DEFAULT_MAX_DEPTH = 16

    def __init__(self, registry: ToolRegistry, max_call_depth: int = DEFAULT_MAX_DEPTH):
        self.registry = registry
        self.max_call_depth = max_call_depth

    async def invoke(self, name: str, args: Optional[Dict[str, Any]] = None) -> Any:
        """Entry point for top-level callers (MCP server, CLI, scheduler)."""
        return await self._invoke(name, args, depth=0)

    async def _invoke(self, name: str, args: Optional[Dict[str, Any]] = None, depth: int = 0) -> Any:
        if depth >= self.max_call_depth:
            raise CallDepthExceededError(name, self.max_call_depth)

        tool = self.registry.get(name)
        try:
            request = tool.request_model.model_validate(args or {})
        except ValidationError as e:
            raise InvalidArgumentsError(format_validation_error(name, e)) from e

        context = ToolContext(call=partial(self._invoke, depth=depth + 1), depth=depth + 1)
        log_debug(f"Invoking tool {name} (depth {depth})")
        return await tool.handler(request, context)
