"""
Workflow Orchestrator (roo_code_workflow).

Each workflow type is a fixed sequence of tool calls made through the
router:

- full_analysis:       inspection -> diagnosis -> [web search] ->
                       lint + type-check (concurrent) -> execution ->
                       JSON bundle in technical/analysis-<epoch_ms>.json
- quick_check:         lint + syntax-only type-check (concurrent) -> summary
- context_condensing:  context_condensing_process
- daily_digest:        daily_digest_generator
- generate_memory_map: generate_memory_map for the first target file

File-scoped workflows analyse target_files[0]. Every tool call is recorded
in a run trace that is written to the log when the workflow ends.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import Config
from .mcp_logger import log_error, log_info
from .models import WorkflowRequest
from .time_utils import epoch_ms, utc_now_iso
from .tool_registry import ToolContext

DEFAULT_FULL_ANALYSIS_PRIORITY = "P1"
FALLBACK_SEARCH_QUERY = "code analysis best practices"


@dataclass
class ToolCall:
    """A single tool call during a workflow."""
    name: str
    ok: bool
    ms: int
    error: Optional[str] = None


@dataclass
class WorkflowRun:
    workflow_type: str
    target: Optional[str]
    started_at: str = field(default_factory=utc_now_iso)
    finished_at: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    outcome: str = "running"  # running, success, failed

    def summary_line(self) -> str:
        calls = ", ".join(f"{c.name}({'ok' if c.ok else 'failed'}, {c.ms}ms)" for c in self.tool_calls)
        return f"Workflow {self.workflow_type} [{self.outcome}] target={self.target} calls=[{calls}]"


def generate_search_query(diagnosis: Dict[str, Any]) -> str:
    """Search query seeded from the first error, warning and suggestion."""
    parts = []
    for key, label in (("errors", "error"), ("warnings", "warning"), ("suggestions", "suggestion")):
        items = diagnosis.get(key) or []
        if items:
            parts.append(f"{label}: {items[0].get('message', '')}")
    if not parts:
        return FALLBACK_SEARCH_QUERY
    return "typescript " + " ".join(parts)


def quick_summary(lint: Dict[str, Any], ts: Dict[str, Any]) -> Dict[str, Any]:
    lint_errors = ((lint or {}).get("summary") or {}).get("totalErrors", 0) or 0
    ts_errors = ((ts or {}).get("summary") or {}).get("errorCount", 0) or 0
    return {
        "totalIssues": lint_errors + ts_errors,
        "needsAttention": lint_errors > 0 or ts_errors > 0,
    }


class WorkflowOrchestrator:
    def __init__(self, config: Config):
        self.config = config

    async def _call(self, run: WorkflowRun, ctx: ToolContext, name: str, args: Dict[str, Any]) -> Any:
        start = time.time()
        try:
            result = await ctx.call(name, args)
        except Exception as e:
            run.tool_calls.append(ToolCall(name, False, int((time.time() - start) * 1000), str(e)))
            raise
        run.tool_calls.append(ToolCall(name, True, int((time.time() - start) * 1000)))
        return result

    async def _call_concurrently(self, run: WorkflowRun, ctx: ToolContext, *calls) -> List[Any]:
        """Run (name, args) calls together; both settle before the first error is raised."""
        results = await asyncio.gather(
            *(self._call(run, ctx, name, args) for name, args in calls),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    async def run(self, request: WorkflowRequest, ctx: ToolContext) -> Dict[str, Any]:
        """Handler for roo_code_workflow."""
        target = request.target_files[0] if request.target_files else None
        run = WorkflowRun(workflow_type=request.workflow_type, target=target)
        log_info(f"Starting workflow: {request.workflow_type}")

        handlers = {
            "full_analysis": self.full_analysis,
            "quick_check": self.quick_check,
            "context_condensing": self.context_condensing,
            "daily_digest": self.daily_digest,
            "generate_memory_map": self.generate_memory_map,
        }
        try:
            result = await handlers[request.workflow_type](request, ctx, run)
            run.outcome = "success"
            return result
        except Exception as e:
            run.outcome = "failed"
            log_error(f"Workflow {request.workflow_type} failed", str(e))
            raise
        finally:
            run.finished_at = utc_now_iso()
            log_info(run.summary_line())

    # === Workflows ===

    async def full_analysis(self, request: WorkflowRequest, ctx: ToolContext, run: WorkflowRun) -> Dict[str, Any]:
        target = request.target_files[0]
        priority = request.priority_override or DEFAULT_FULL_ANALYSIS_PRIORITY
        analyze = {"file_path": target, "priority_level": priority}

        inspection = await self._call(run, ctx, "code_intelligence_analyze", dict(analyze, phase="inspection"))
        diagnosis = await self._call(run, ctx, "code_intelligence_analyze", dict(analyze, phase="diagnosis"))

        web_search = None
        if request.include_web_search:
            web_search = await self._call(run, ctx, "web_search_enhanced", {
                "query": generate_search_query(diagnosis),
                "search_type": "error_solution",
                "max_results": 10,
            })
            diagnosis = dict(diagnosis, webContext=web_search)

        lint, ts = await self._call_concurrently(
            run, ctx,
            ("eslint_analysis", {"file_path": target, "auto_fix": False}),
            ("typescript_diagnostics", {
                "file_path": target,
                "check_type": "all",
                "include_suggestions": True,
            }),
        )

        execution = await self._call(run, ctx, "code_intelligence_analyze", dict(
            analyze, phase="execution", diagnosis_results=diagnosis,
        ))

        bundle = {
            "inspection": inspection,
            "diagnosis": diagnosis,
            "execution": execution,
            "linting": lint,
            "typescript": ts,
        }
        stored = await self._call(run, ctx, "memory_bank_manager", {
            "action": "write",
            "file_category": "technical",
            "file_name": f"analysis-{epoch_ms()}.json",
            "content": json.dumps(bundle, indent=2, default=str),
        })

        return {
            "inspection": inspection,
            "diagnosis": diagnosis,
            "execution": execution,
            "toolResults": {"eslint": lint, "typescript": ts, "webSearch": web_search},
            "storedAt": stored.get("path"),
        }

    async def quick_check(self, request: WorkflowRequest, ctx: ToolContext, run: WorkflowRun) -> Dict[str, Any]:
        target = request.target_files[0]
        lint, ts = await self._call_concurrently(
            run, ctx,
            ("eslint_analysis", {"file_path": target, "auto_fix": False}),
            ("typescript_diagnostics", {
                "file_path": target,
                "check_type": "syntax",
                "include_suggestions": False,
            }),
        )
        return {"eslint": lint, "typescript": ts, "summary": quick_summary(lint, ts)}

    async def context_condensing(self, request: WorkflowRequest, ctx: ToolContext, run: WorkflowRun) -> Dict[str, Any]:
        rate = request.compression_rate
        if rate is None:
            rate = self.config.priorities.default_compression_rate
        return await self._call(run, ctx, "context_condensing_process", {
            "target_files": request.target_files,
            "compression_rate": rate,
        })

    async def daily_digest(self, request: WorkflowRequest, ctx: ToolContext, run: WorkflowRun) -> Dict[str, Any]:
        return await self._call(run, ctx, "daily_digest_generator", {})

    async def generate_memory_map(self, request: WorkflowRequest, ctx: ToolContext, run: WorkflowRun) -> Dict[str, Any]:
        return await self._call(run, ctx, "generate_memory_map", {"file_path": request.target_files[0]})
