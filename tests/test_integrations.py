"""
Tests for the ESLint, TypeScript, SerpAPI and LLM adapters

Run with: python -m pytest tests/test_integrations.py -v
"""

import asyncio
import json
from dataclasses import replace

import pytest

from intellicode_mcp.config import ESLintConfig, LLMConfig, LLMProviderConfig, SerpApiConfig, TypeScriptConfig
from intellicode_mcp.errors import ExternalToolError
from intellicode_mcp.integrations import eslint, serpapi, typescript
from intellicode_mcp.integrations.llm_clients import LLMClient, initialize_client, preferred_client
from intellicode_mcp.integrations.process import CommandResult
from intellicode_mcp.models import ESLintRequest, TypeScriptRequest, WebSearchRequest
from intellicode_mcp.time_utils import epoch_ms

TSC_OUTPUT = """src/app.ts(12,5): error TS2322: Type 'string' is not assignable to type 'number'.
  The expected type comes from property 'count'.
src/app.ts(3,1): error TS1005: ';' expected.
src/app.ts(7,9): warning TS6133: 'unused' is declared but its value is never read.
error TS6053: File 'missing.ts' not found.
"""

ESLINT_REPORT = [{
    "filePath": "/repo/src/app.ts",
    "messages": [
        {"ruleId": "no-var", "severity": 2, "message": "Unexpected var", "line": 2, "column": 1, "fix": {"range": [0, 3]}},
        {"ruleId": "no-console", "severity": 1, "message": "Unexpected console", "line": 6, "column": 1},
    ],
}]


class FakeRunner:
    """Records argv and returns a fixed CommandResult."""

    def __init__(self, returncode=0, stdout="", stderr=""):
        self.result = CommandResult(returncode, stdout, stderr)
        self.argv = None

    async def __call__(self, argv, tool):
        self.argv = list(argv)
        return self.result


class TestESLint:
    """eslint_analysis report reduction."""

    def test_format_results_counts(self):
        result = eslint.format_results(ESLINT_REPORT, "warn")
        assert result["summary"] == {"totalErrors": 1, "totalWarnings": 1, "filesAnalyzed": 1}
        messages = result["results"][0]["messages"]
        assert messages[0]["fixable"] is True
        assert messages[1]["fixable"] is False

    def test_threshold_drops_warnings(self):
        result = eslint.format_results(ESLINT_REPORT, "error")
        assert result["summary"]["totalWarnings"] == 0
        assert [m["ruleId"] for m in result["results"][0]["messages"]] == ["no-var"]

    def test_command_line(self, tmp_path):
        config = ESLintConfig(config_path=str(tmp_path / "missing.json"), auto_fix=True)
        request = ESLintRequest(file_path="src/app.ts", auto_fix=True, rules_override={"no-var": "error"})
        argv = eslint.build_command(config, request)
        assert argv == ["npx", "eslint", "--format", "json", "--fix", "--rule", '{"no-var": "error"}', "src/app.ts"]

    def test_fix_needs_config_permission(self, tmp_path):
        rc = tmp_path / ".eslintrc.json"
        rc.write_text("{}", encoding="utf-8")
        config = ESLintConfig(config_path=str(rc), auto_fix=False)
        argv = eslint.build_command(config, ESLintRequest(file_path="a.ts", auto_fix=True))
        assert "--fix" not in argv
        assert argv[argv.index("--config") + 1] == str(rc)

    def test_analyze_with_lint_errors(self):
        runner = FakeRunner(returncode=1, stdout=json.dumps(ESLINT_REPORT))
        analyzer = eslint.ESLintAnalyzer(ESLintConfig(), runner=runner)
        result = asyncio.run(analyzer.analyze(ESLintRequest(file_path="src/app.ts"), None))
        assert result["summary"]["totalErrors"] == 1
        assert runner.argv[-1] == "src/app.ts"

    def test_analyze_without_report_fails(self):
        runner = FakeRunner(returncode=2, stdout="", stderr="Oops! Something went wrong!")
        analyzer = eslint.ESLintAnalyzer(ESLintConfig(), runner=runner)
        with pytest.raises(ExternalToolError) as exc:
            asyncio.run(analyzer.analyze(ESLintRequest(file_path="src/app.ts"), None))
        assert exc.value.tool == "eslint_analysis"


class TestTypeScript:
    """tsc output parsing and filtering."""

    def test_parse_output(self):
        diagnostics = typescript.parse_tsc_output(TSC_OUTPUT)
        assert [d["code"] for d in diagnostics] == [2322, 1005, 6133, 6053]
        assert diagnostics[0]["position"] == {"line": 12, "column": 5}
        assert diagnostics[0]["message"].endswith("\nThe expected type comes from property 'count'.")
        assert diagnostics[2]["category"] == "warning"
        assert diagnostics[3]["file"] is None
        assert diagnostics[3]["position"] == {"line": 0, "column": 0}

    def test_syntax_filter(self):
        diagnostics = typescript.parse_tsc_output(TSC_OUTPUT)
        assert [d["code"] for d in typescript.filter_check_type(diagnostics, "syntax")] == [1005]
        assert 1005 not in [d["code"] for d in typescript.filter_check_type(diagnostics, "semantic")]

    def test_diagnostic_level(self):
        diagnostics = typescript.parse_tsc_output(TSC_OUTPUT)
        result = typescript.format_diagnostics(diagnostics, include_suggestions=True, diagnostic_level="error")
        assert result["summary"] == {"errorCount": 3, "warningCount": 0, "suggestionCount": 0}

    def test_diagnose_through_runner(self):
        runner = FakeRunner(returncode=2, stdout=TSC_OUTPUT)
        diagnostics = typescript.TypeScriptDiagnostics(TypeScriptConfig(), runner=runner)
        request = TypeScriptRequest(file_path="src/app.ts", check_type="all")
        result = asyncio.run(diagnostics.diagnose(request, None))

        assert runner.argv == ["npx", "tsc", "--noEmit", "--pretty", "false", "src/app.ts"]
        assert result["summary"]["errorCount"] == 3
        assert result["summary"]["warningCount"] == 1

    def test_clean_run(self):
        diagnostics = typescript.TypeScriptDiagnostics(TypeScriptConfig(), runner=FakeRunner())
        result = asyncio.run(diagnostics.diagnose(TypeScriptRequest(file_path="a.ts", check_type="all"), None))
        assert result["summary"] == {"errorCount": 0, "warningCount": 0, "suggestionCount": 0}

    def test_crash_without_diagnostics_fails(self):
        runner = FakeRunner(returncode=1, stderr="Cannot find module 'typescript'")
        diagnostics = typescript.TypeScriptDiagnostics(TypeScriptConfig(), runner=runner)
        with pytest.raises(ExternalToolError):
            asyncio.run(diagnostics.diagnose(TypeScriptRequest(file_path="a.ts", check_type="all"), None))


class TestSerpApi:
    """web_search_enhanced caching and formatting."""

    @pytest.mark.parametrize("value,seconds", [
        ("30s", 30), ("5m", 300), ("1h", 3600), ("2d", 172800),
        ("", 0), ("h", 0), ("abc", 0), ("10x", 0),
    ])
    def test_parse_duration(self, value, seconds):
        assert serpapi.parse_duration(value) == seconds

    def test_cache_round_trip(self, tmp_path):
        cache = serpapi.SearchCache(str(tmp_path))
        cache.put("react hooks", {"type": "general", "results": []}, "1h")
        assert cache.get("react hooks") == {"type": "general", "results": []}
        assert "=" not in cache.path_for("react hooks").name

    def test_expired_entry_deleted(self, tmp_path):
        cache = serpapi.SearchCache(str(tmp_path))
        path = cache.path_for("old query")
        path.write_text(json.dumps({
            "query": "old query",
            "timestamp": epoch_ms() - 120_000,
            "cache_duration": "1m",
            "results": {"results": []},
        }), encoding="utf-8")

        assert cache.get("old query") is None
        assert not path.exists()

    def test_format_error_solution(self):
        data = {"organic_results": [{"title": "Fix", "link": "https://x", "snippet": "Use let"}]}
        assert serpapi.format_results(data, "error_solution") == {
            "type": "error_solution",
            "results": [{"title": "Fix", "solution": "Use let", "reference": "https://x"}],
        }

    def test_search_fetches_once_then_caches(self, tmp_path):
        urls = []

        def fetch(url):
            urls.append(url)
            return {"organic_results": [{"title": "Hooks", "link": "https://react.dev", "snippet": "..."}]}

        config = SerpApiConfig(api_key="test-key", cache_dir=str(tmp_path))
        search = serpapi.WebSearch(config, fetch=fetch)
        request = WebSearchRequest(query="react hooks", search_type="general", max_results=3)

        first = asyncio.run(search.search(request, None))
        second = asyncio.run(search.search(request, None))

        assert first == second
        assert first["results"][0]["title"] == "Hooks"
        assert len(urls) == 1
        assert "num=3" in urls[0] and "api_key=test-key" in urls[0]

    def test_missing_api_key(self, tmp_path):
        search = serpapi.WebSearch(SerpApiConfig(cache_dir=str(tmp_path)), fetch=lambda url: {})
        request = WebSearchRequest(query="anything", search_type="general")
        with pytest.raises(ExternalToolError) as exc:
            asyncio.run(search.search(request, None))
        assert "SERP_API_KEY not configured" in str(exc.value)


class TestLLMClients:
    """Provider clients for summary enhancement."""

    def test_no_key_no_client(self):
        assert initialize_client(LLMConfig(), "openai") is None
        assert preferred_client(LLMConfig(preferred_llm="openai")) is None

    def test_client_defaults(self):
        config = LLMConfig(preferred_llm="deepseek", providers={"deepseek": LLMProviderConfig(api_key="k")})
        client = preferred_client(config)
        assert client.base_url == "https://api.deepseek.com"
        assert client.model == "deepseek-chat"

    def test_anthropic_request(self):
        client = LLMClient("anthropic", "k", "https://api.anthropic.com/v1", "claude-test")
        url, headers, body = client.build_request("hi")
        assert url == "https://api.anthropic.com/v1/messages"
        assert headers["x-api-key"] == "k"
        assert body["messages"] == [{"role": "user", "content": "hi"}]

    def test_extract_text(self):
        openai = LLMClient("openai", "k", "u", "m")
        assert openai.extract_text({"choices": [{"message": {"content": "done"}}]}) == "done"
        google = LLMClient("google", "k", "u", "m")
        assert google.extract_text({"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]}) == "ab"

    def test_bad_payload(self):
        with pytest.raises(ExternalToolError):
            LLMClient("openai", "k", "u", "m").extract_text({"error": "quota"})
