"""
Error taxonomy for IntelliCode.

- NotFoundError: a tool, file or memory record is absent
- InvalidArgumentsError: a required argument is missing or malformed
- ExternalToolError: an external capability (lint, tsc, search, LLM) failed

Partial failures (archive, audit) are reported as per-item results, never
raised.
"""

import sys
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .mcp_logger import log_error
from .time_utils import utc_now_iso


class IntelliCodeError(Exception):
    """Base error carrying a code, a severity and optional context."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        severity: str = "error",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity  # error, fatal
        self.context = context or {}


class NotFoundError(IntelliCodeError):
    pass


class ToolNotFoundError(NotFoundError):
    def __init__(self, tool_name: str):
        super().__init__(
            f"Tool '{tool_name}' not found or does not have a handler.",
            code="TOOL_NOT_FOUND",
            context={"tool": tool_name},
        )
        self.tool_name = tool_name


class RecordNotFoundError(NotFoundError):
    def __init__(self, category: str, file_name: str, path: str):
        super().__init__(
            f"Memory record not found: {category}/{file_name}",
            code="RECORD_NOT_FOUND",
            context={"category": category, "file_name": file_name, "path": path},
        )


class InvalidArgumentsError(IntelliCodeError):
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="INVALID_ARGUMENTS", context=context)


class ExternalToolError(IntelliCodeError):
    def __init__(self, message: str, tool: str, context: Optional[Dict[str, Any]] = None):
        ctx = {"tool": tool}
        ctx.update(context or {})
        super().__init__(message, code="EXTERNAL_FAILURE", context=ctx)
        self.tool = tool


class DuplicateToolError(IntelliCodeError):
    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' is already registered", code="DUPLICATE_TOOL")


class CallDepthExceededError(IntelliCodeError):
    def __init__(self, tool_name: str, max_depth: int):
        super().__init__(
            f"Call depth limit of {max_depth} exceeded while invoking '{tool_name}'",
            code="CALL_DEPTH_EXCEEDED",
            context={"tool": tool_name, "max_depth": max_depth},
        )


class ConfigError(IntelliCodeError):
    def __init__(self, message: str):
        super().__init__(message, code="CONFIG_ERROR", severity="fatal")


@dataclass
class ErrorDetails:
    """Flattened view of an exception for logging."""
    message: str
    timestamp: str
    severity: str = "error"
    code: Optional[str] = None
    stack: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)


def extract_error_details(error: BaseException) -> ErrorDetails:
    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    if isinstance(error, IntelliCodeError):
        return ErrorDetails(
            message=error.message,
            timestamp=utc_now_iso(),
            severity=error.severity,
            code=error.code,
            stack=stack,
            context=error.context,
        )
    return ErrorDetails(
        message=str(error),
        timestamp=utc_now_iso(),
        code=getattr(error, "code", None) if isinstance(getattr(error, "code", None), str) else None,
        stack=stack,
    )


def handle_error(context: str, error: BaseException) -> ErrorDetails:
    """
    Log an error with its context. Fatal errors terminate the process.
    """
    details = extract_error_details(error)
    log_error(context, {
        "message": details.message,
        "code": details.code,
        "severity": details.severity,
        "context": details.context,
    })
    if details.stack:
        log_error(details.stack)

    if details.severity == "fatal":
        log_error("Fatal error occurred, terminating process")
        sys.exit(1)
    return details
