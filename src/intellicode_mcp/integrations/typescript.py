"""
TypeScript adapter (typescript_diagnostics).

Runs `tsc --noEmit --pretty false <file>` and parses the plain-text
diagnostics:

    src/app.ts(12,5): error TS2322: Type 'string' is not assignable ...

check_type selects which codes are kept: `syntax` keeps TS1xxx only,
`semantic` keeps everything else, `all` keeps both.
"""

import re
from typing import Any, Dict, List, Optional

from ..config import TypeScriptConfig
from ..errors import ExternalToolError
from ..mcp_logger import log_info
from ..models import TypeScriptRequest
from ..tool_registry import ToolContext
from .process import CommandRunner, run_command

TOOL_NAME = "typescript_diagnostics"

_LOCATED_RE = re.compile(
    r"^(?P<file>.+?)\((?P<line>\d+),(?P<column>\d+)\):\s+"
    r"(?P<category>error|warning|suggestion|message)\s+TS(?P<code>\d+):\s*(?P<message>.*)$"
)
_GLOBAL_RE = re.compile(r"^(?P<category>error|warning|suggestion|message)\s+TS(?P<code>\d+):\s*(?P<message>.*)$")

# Most severe first; diagnostic_level is the least severe category kept
LEVEL_ORDER = ["error", "warning", "suggestion", "message"]


def parse_tsc_output(output: str) -> List[Dict[str, Any]]:
    diagnostics: List[Dict[str, Any]] = []
    for raw_line in output.splitlines():
        line = raw_line.rstrip()
        if not line:
            continue
        match = _LOCATED_RE.match(line) or _GLOBAL_RE.match(line)
        if match:
            parts = match.groupdict()
            diagnostics.append({
                "message": parts["message"],
                "category": parts["category"],
                "code": int(parts["code"]),
                "position": {
                    "line": int(parts.get("line") or 0),
                    "column": int(parts.get("column") or 0),
                },
                "file": parts.get("file"),
            })
        elif diagnostics and raw_line[:1].isspace():
            # Indented continuation of a multi-line message chain
            diagnostics[-1]["message"] += "\n" + line.strip()
    return diagnostics


def filter_check_type(diagnostics: List[Dict[str, Any]], check_type: str) -> List[Dict[str, Any]]:
    if check_type == "syntax":
        return [d for d in diagnostics if 1000 <= d["code"] < 2000]
    if check_type == "semantic":
        return [d for d in diagnostics if not 1000 <= d["code"] < 2000]
    return diagnostics


def format_diagnostics(
    diagnostics: List[Dict[str, Any]],
    include_suggestions: bool,
    diagnostic_level: Optional[str],
) -> Dict[str, Any]:
    level = (diagnostic_level or "message").lower()
    max_rank = LEVEL_ORDER.index(level) if level in LEVEL_ORDER else len(LEVEL_ORDER) - 1
    kept = [d for d in diagnostics if LEVEL_ORDER.index(d["category"]) <= max_rank]

    errors = [d for d in kept if d["category"] == "error"]
    warnings = [d for d in kept if d["category"] == "warning"]
    suggestions = [d for d in kept if d["category"] == "suggestion"] if include_suggestions else []

    return {
        "diagnostics": {"errors": errors, "warnings": warnings, "suggestions": suggestions},
        "summary": {
            "errorCount": len(errors),
            "warningCount": len(warnings),
            "suggestionCount": len(suggestions),
        },
    }


class TypeScriptDiagnostics:
    def __init__(self, config: TypeScriptConfig, runner: CommandRunner = run_command):
        self.config = config
        self.runner = runner

    def build_command(self, file_path: str) -> List[str]:
        return list(self.config.command) + ["--noEmit", "--pretty", "false", file_path]

    async def diagnose(self, request: TypeScriptRequest, ctx: ToolContext) -> Dict[str, Any]:
        log_info(f"Running TypeScript diagnostics on {request.file_path}")
        result = await self.runner(self.build_command(request.file_path), TOOL_NAME)

        output = result.stdout + ("\n" + result.stderr if result.stderr else "")
        diagnostics = parse_tsc_output(output)
        if result.returncode != 0 and not diagnostics:
            raise ExternalToolError(
                f"tsc failed with exit code {result.returncode}: {output.strip()[:500]}",
                tool=TOOL_NAME,
            )

        diagnostics = filter_check_type(diagnostics, request.check_type)
        return format_diagnostics(diagnostics, request.include_suggestions, self.config.diagnostic_level)
