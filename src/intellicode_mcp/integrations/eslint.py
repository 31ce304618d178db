"""
ESLint adapter (eslint_analysis).

Runs the configured ESLint command with `--format json` and reduces its
report to per-file message lists plus a summary. Messages below the
configured severity threshold are dropped.
"""

import json
from pathlib import Path
from typing import Any, Dict, List

from ..config import ESLintConfig
from ..errors import ExternalToolError
from ..mcp_logger import log_error, log_info
from ..models import ESLintRequest
from ..tool_registry import ToolContext
from .process import CommandRunner, run_command

TOOL_NAME = "eslint_analysis"

SEVERITY_MAP = {
    "off": 0,
    "warn": 1,
    "warning": 1,
    "error": 2,
}


def severity_threshold(name: str) -> int:
    return SEVERITY_MAP.get((name or "").lower(), 0)


def build_command(config: ESLintConfig, request: ESLintRequest) -> List[str]:
    argv = list(config.command) + ["--format", "json"]
    if config.config_path and Path(config.config_path).exists():
        argv += ["--config", config.config_path]
    if request.auto_fix and config.auto_fix:
        argv.append("--fix")
    for rule, setting in (request.rules_override or {}).items():
        argv += ["--rule", json.dumps({rule: setting})]
    argv.append(request.file_path)
    return argv


def format_results(raw_results: List[Dict[str, Any]], threshold_name: str) -> Dict[str, Any]:
    threshold = severity_threshold(threshold_name)
    formatted = []
    for result in raw_results:
        messages = [m for m in result.get("messages", []) if m.get("severity", 0) >= threshold]
        formatted.append({
            "filePath": result.get("filePath"),
            "errorCount": sum(1 for m in messages if m.get("severity") == 2),
            "warningCount": sum(1 for m in messages if m.get("severity") == 1),
            "messages": [
                {
                    "ruleId": m.get("ruleId"),
                    "severity": m.get("severity"),
                    "message": m.get("message"),
                    "line": m.get("line"),
                    "column": m.get("column"),
                    "fixable": m.get("fix") is not None,
                }
                for m in messages
            ],
        })

    return {
        "results": formatted,
        "summary": {
            "totalErrors": sum(r["errorCount"] for r in formatted),
            "totalWarnings": sum(r["warningCount"] for r in formatted),
            "filesAnalyzed": len(formatted),
        },
    }


class ESLintAnalyzer:
    def __init__(self, config: ESLintConfig, runner: CommandRunner = run_command):
        self.config = config
        self.runner = runner

    async def analyze(self, request: ESLintRequest, ctx: ToolContext) -> Dict[str, Any]:
        log_info(f"Running ESLint analysis on {request.file_path}")
        result = await self.runner(build_command(self.config, request), TOOL_NAME)

        # Exit code 1 only means lint errors were found
        try:
            raw = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            log_error("ESLint analysis failed", result.stderr.strip() or result.stdout[:500])
            raise ExternalToolError(
                f"ESLint produced no JSON report (exit {result.returncode}): {result.stderr.strip()}",
                tool=TOOL_NAME,
            ) from e
        if not isinstance(raw, list):
            raise ExternalToolError("Unexpected ESLint report shape", tool=TOOL_NAME)

        return format_results(raw, self.config.severity_threshold)
