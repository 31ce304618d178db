"""
Tests for orchestrator.py (roo_code_workflow)

Run with: python -m pytest tests/test_orchestrator.py -v
"""

import asyncio
import json
from pathlib import Path

import pytest
from mock_mcp import eslint_result, no_delay, ts_result

from intellicode_mcp.errors import InvalidArgumentsError, RecordNotFoundError
from intellicode_mcp.orchestrator import (
    FALLBACK_SEARCH_QUERY,
    ToolCall,
    WorkflowRun,
    generate_search_query,
    quick_summary,
)
from intellicode_mcp.tools import build_router


@pytest.fixture
def ts_file(tmp_path):
    path = tmp_path / "app.ts"
    path.write_text('import { api } from "./api";\nvar retries = 3;\n', encoding="utf-8")
    return str(path)


def workflow(router, **args):
    return asyncio.run(router.invoke("roo_code_workflow", args))


class TestHelpers:
    """Pure helpers used by the workflows."""

    def test_quick_summary_totals(self):
        summary = quick_summary(eslint_result(errors=2, warnings=5), ts_result(errors=[{"message": "x"}]))
        assert summary == {"totalIssues": 3, "needsAttention": True}

    def test_quick_summary_clean(self):
        assert quick_summary(eslint_result(), ts_result()) == {"totalIssues": 0, "needsAttention": False}

    def test_search_query_from_diagnosis(self):
        query = generate_search_query({
            "errors": [{"message": "TS2322: bad type"}],
            "warnings": [],
            "suggestions": [{"message": "prefer const"}],
        })
        assert query == "typescript error: TS2322: bad type suggestion: prefer const"

    def test_search_query_fallback(self):
        assert generate_search_query({"errors": [], "warnings": []}) == FALLBACK_SEARCH_QUERY

    def test_run_summary_line(self):
        run = WorkflowRun(workflow_type="quick_check", target="a.ts", outcome="success")
        run.tool_calls.append(ToolCall("eslint_analysis", True, 12))
        assert run.summary_line() == "Workflow quick_check [success] target=a.ts calls=[eslint_analysis(ok, 12ms)]"


class TestValidation:
    """Arguments are checked before any tool runs."""

    def test_file_workflow_requires_targets(self, router, mcp):
        with pytest.raises(InvalidArgumentsError) as exc:
            workflow(router, workflow_type="quick_check")
        assert "target_files is required" in str(exc.value)
        assert mcp.calls == []

    def test_empty_target_list_rejected(self, router, mcp):
        with pytest.raises(InvalidArgumentsError):
            workflow(router, workflow_type="full_analysis", target_files=[])
        assert mcp.calls == []

    def test_unknown_workflow_type(self, router):
        with pytest.raises(InvalidArgumentsError):
            workflow(router, workflow_type="deploy", target_files=["a.ts"])


class TestQuickCheck:
    """Lint plus syntax-only type check."""

    def test_totals_from_both_tools(self, router, mcp, ts_file):
        mcp.set_result("eslint_analysis", eslint_result(errors=2))
        mcp.set_result("typescript_diagnostics", ts_result(errors=[{"message": "';' expected", "code": 1005}]))

        result = workflow(router, workflow_type="quick_check", target_files=[ts_file])

        assert result["summary"] == {"totalIssues": 3, "needsAttention": True}
        assert result["eslint"]["summary"]["totalErrors"] == 2

    def test_clean_file(self, router, ts_file):
        result = workflow(router, workflow_type="quick_check", target_files=[ts_file])
        assert result["summary"] == {"totalIssues": 0, "needsAttention": False}

    def test_type_check_is_syntax_only(self, router, mcp, ts_file):
        workflow(router, workflow_type="quick_check", target_files=[ts_file])
        ts_args = mcp.args_for("typescript_diagnostics")[0]
        assert ts_args["check_type"] == "syntax"
        assert ts_args["include_suggestions"] is False
        assert mcp.args_for("eslint_analysis")[0]["auto_fix"] is False

    def test_only_first_target_analysed(self, router, mcp, ts_file, tmp_path):
        workflow(router, workflow_type="quick_check", target_files=[ts_file, str(tmp_path / "other.ts")])
        assert mcp.call_count("eslint_analysis") == 1
        assert mcp.args_for("eslint_analysis")[0]["file_path"] == ts_file


class TestFullAnalysis:
    """Inspection, diagnosis, tools, execution and a stored bundle."""

    def test_result_shape_and_stored_bundle(self, router, mcp, memory_root, ts_file):
        result = workflow(router, workflow_type="full_analysis", target_files=[ts_file])

        assert set(result) == {"inspection", "diagnosis", "execution", "toolResults", "storedAt"}
        assert result["inspection"]["dependencies"] == ["./api"]
        assert result["execution"]["priority"] == "P1"
        assert result["toolResults"]["webSearch"] is None
        assert mcp.call_count("web_search_enhanced") == 0

        stored = Path(result["storedAt"])
        assert stored.parent == (memory_root / "technical").resolve()
        assert stored.name.startswith("analysis-") and stored.name.endswith(".json")
        bundle = json.loads(stored.read_text(encoding="utf-8"))
        assert set(bundle) == {"inspection", "diagnosis", "execution", "linting", "typescript"}

    def test_execution_builds_on_diagnosis(self, router, ts_file):
        result = workflow(router, workflow_type="full_analysis", target_files=[ts_file])
        fixes = [s for s in result["execution"]["solutions"] if s["type"] == "fix"]
        assert fixes[0]["code"] == "var retries = 3;"

    def test_priority_override(self, router, ts_file):
        result = workflow(router, workflow_type="full_analysis", target_files=[ts_file], priority_override="P0")
        assert result["execution"]["priority"] == "P0"

    def test_web_search_context(self, router, mcp, ts_file):
        mcp.set_result("web_search_enhanced", {
            "type": "error_solution",
            "results": [{"title": "Avoid var", "solution": "Use let", "reference": "https://example.com"}],
        })
        result = workflow(router, workflow_type="full_analysis", target_files=[ts_file], include_web_search=True)

        query = mcp.args_for("web_search_enhanced")[0]["query"]
        assert query.startswith("typescript error: Disallowed legacy 'var'")
        assert mcp.was_called("web_search_enhanced", "error_solution")
        assert result["diagnosis"]["webContext"]["results"][0]["title"] == "Avoid var"
        assert result["toolResults"]["webSearch"] == result["diagnosis"]["webContext"]

    def test_tool_failure_aborts_workflow(self, router, mcp, memory_root, ts_file):
        mcp.set_error("eslint_analysis", RuntimeError("eslint crashed"))
        with pytest.raises(RuntimeError):
            workflow(router, workflow_type="full_analysis", target_files=[ts_file])
        assert not (memory_root / "technical").exists()

    def test_concurrent_sibling_settles_before_failure(self, config, mcp, ts_file):
        finished = []

        async def slow_typescript(request, ctx):
            await asyncio.sleep(0.05)
            finished.append(request.check_type)
            return ts_result()

        handlers = dict(mcp.handlers(), typescript_diagnostics=slow_typescript)
        router = build_router(config, handlers=handlers, delay=no_delay)
        mcp.set_error("eslint_analysis", RuntimeError("eslint crashed"))

        with pytest.raises(RuntimeError, match="eslint crashed"):
            workflow(router, workflow_type="quick_check", target_files=[ts_file])
        assert finished == ["syntax"]


class TestMemoryWorkflows:
    """Workflows that delegate to memory tools."""

    def test_daily_digest(self, seeded_router):
        result = workflow(seeded_router, workflow_type="daily_digest")
        assert result["generated"] is True
        digest = Path(result["path"]).read_text(encoding="utf-8")
        assert "## Completed Tasks" in digest
        assert "# Progress Log" in digest

    def test_daily_digest_missing_source_fails(self, router):
        with pytest.raises(RecordNotFoundError):
            workflow(router, workflow_type="daily_digest")

    def test_context_condensing_uses_default_rate(self, seeded_router):
        result = workflow(seeded_router, workflow_type="context_condensing", target_files=["progress.md"])
        assert result["status"] == "success"
        condensed = result["results"][0]
        assert condensed["priority"] == "P2"
        assert condensed["condensed_content"].startswith("Summarized content for progress.md: ")

    def test_generate_memory_map(self, router, memory_root, ts_file):
        result = workflow(router, workflow_type="generate_memory_map", target_files=[ts_file])
        assert result["dependencies"] == ["./api"]
        assert (memory_root / "technical" / "dependency-map.md").exists()
