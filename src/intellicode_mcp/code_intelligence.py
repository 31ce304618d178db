"""
Code Intelligence - phased analysis of one target file.

Phases:
1. Inspection   - read the file, count lines, extract dependencies
2. Diagnosis    - external diagnostics tool + local heuristic rules
3. Execution    - one solution per finding plus a closing recommendation
4. ConflictCheck - proposed change vs. contract documents

`all` runs the four in order and never stops on conflicts; they are
reported for the caller to act on. Memory map generation re-runs
Inspection and writes the dependency list as a Mermaid graph.

Other tools (diagnostics, memory bank) are reached only through the
ToolContext passed to each call.
"""

import ast
import asyncio
import json
import re
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import Config
from .conflict_check import (
    CONTRACT_DOCUMENTS,
    DEFAULT_CONFLICT_RULES,
    ConflictContext,
    ConflictRule,
    run_conflict_rules,
)
from .mcp_logger import log_info, log_warn
from .models import CodeIntelligenceRequest, MemoryMapRequest
from .time_utils import utc_now_iso
from .tool_registry import ToolContext

DelayHook = Callable[[float], Awaitable[None]]

DEPENDENCY_MAP_FILE = "dependency-map.md"

CLOSING_RECOMMENDATION = (
    "Re-run diagnosis after applying the fixes above and update "
    "technical/error-log.md with anything that could not be resolved."
)


@dataclass
class Finding:
    """A single diagnosis finding."""
    message: str
    line: int
    severity: str  # error, warning, suggestion

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DiagnosticRule = Callable[[List[str]], List[Finding]]


# === Local diagnostic rules ===

_MARKER_RE = re.compile(r"\b(TODO|FIXME)\b")
_DEBUG_PRINT_RE = re.compile(r"\bconsole\.(log|debug|trace)\s*\(|^\s*print\s*\(")
_LEGACY_VAR_RE = re.compile(r"(^|[;{(\s])var\s+[A-Za-z_$]")


def todo_marker_rule(lines: List[str]) -> List[Finding]:
    findings = []
    for number, text in enumerate(lines, start=1):
        match = _MARKER_RE.search(text)
        if match:
            findings.append(Finding(f"{match.group(1)} marker found: {text.strip()}", number, "warning"))
    return findings


def debug_print_rule(lines: List[str]) -> List[Finding]:
    return [
        Finding("Debug output statement; remove it or route it through the logger", number, "suggestion")
        for number, text in enumerate(lines, start=1)
        if _DEBUG_PRINT_RE.search(text)
    ]


def legacy_var_rule(lines: List[str]) -> List[Finding]:
    return [
        Finding("Disallowed legacy 'var' declaration; use 'let' or 'const'", number, "error")
        for number, text in enumerate(lines, start=1)
        if _LEGACY_VAR_RE.search(text)
    ]


DEFAULT_DIAGNOSTIC_RULES: List[DiagnosticRule] = [
    todo_marker_rule,
    debug_print_rule,
    legacy_var_rule,
]


# === Dependency extraction ===

_JS_IMPORT_PATTERNS = [
    re.compile(r"""\bimport\s+(?:[\w*{}\s,$]+?\s+from\s+)?["']([^"']+)["']"""),
    re.compile(r"""\bexport\s+[\w*{}\s,$]+?\s+from\s+["']([^"']+)["']"""),
    re.compile(r"""\brequire\(\s*["']([^"']+)["']\s*\)"""),
    re.compile(r"""\bimport\(\s*["']([^"']+)["']\s*\)"""),
]


def _python_dependencies(source: str) -> List[str]:
    tree = ast.parse(source)
    deps = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            deps.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            deps.append("." * node.level + (node.module or ""))
    return deps


def _script_dependencies(source: str) -> List[str]:
    found = []
    for pattern in _JS_IMPORT_PATTERNS:
        for match in pattern.finditer(source):
            found.append((match.start(), match.group(1)))
    return [dep for _, dep in sorted(found)]


def extract_dependencies(file_path: str, source: str) -> List[str]:
    """Import targets in source order, without duplicates."""
    if file_path.endswith(".py"):
        deps = _python_dependencies(source)
    else:
        deps = _script_dependencies(source)
    return list(dict.fromkeys(deps))


def render_mermaid(file_path: str, dependencies: List[str]) -> str:
    root = Path(file_path).name or file_path
    lines = ["graph TD", f'    root["{root}"]']
    for i, dep in enumerate(dependencies):
        label = dep.replace('"', "'")
        lines.append(f'    root --> dep{i}["{label}"]')
    return "\n".join(lines)


# === Pipeline ===

class CodeIntelligence:
    """
    Phase runner for code_intelligence_analyze and generate_memory_map.

    Rule lists and the delay hook are injectable; the defaults are the
    built-in heuristics and asyncio.sleep.
    """

    def __init__(
        self,
        config: Config,
        diagnostic_rules: Optional[List[DiagnosticRule]] = None,
        conflict_rules: Optional[List[ConflictRule]] = None,
        delay: DelayHook = asyncio.sleep,
    ):
        self.config = config
        self.diagnostic_rules = list(DEFAULT_DIAGNOSTIC_RULES if diagnostic_rules is None else diagnostic_rules)
        self.conflict_rules = list(DEFAULT_CONFLICT_RULES if conflict_rules is None else conflict_rules)
        self.delay = delay

    async def _think(self) -> None:
        seconds = self.config.analysis.think_delay_seconds
        if seconds > 0:
            await self.delay(seconds)

    # --- Inspection ---

    async def inspect(self, file_path: str) -> Dict[str, Any]:
        try:
            content = await asyncio.to_thread(Path(file_path).read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log_warn(f"Inspection could not read {file_path}: {e}")
            return {"phase": "inspection", "fileContent": None, "dependencies": [], "complexityScore": 0}

        try:
            dependencies = extract_dependencies(file_path, content)
        except (SyntaxError, ValueError) as e:
            log_warn(f"Inspection could not parse {file_path}: {e}")
            dependencies = []

        return {
            "phase": "inspection",
            "fileContent": content,
            "dependencies": dependencies,
            "complexityScore": len(content.splitlines()),
        }

    # --- Diagnosis ---

    async def diagnose(self, file_path: str, ctx: ToolContext, content: Optional[str] = None) -> Dict[str, Any]:
        await self._think()
        errors: List[Dict[str, Any]] = []
        warnings: List[Dict[str, Any]] = []
        suggestions: List[Dict[str, Any]] = []
        buckets = {"error": errors, "warning": warnings, "suggestion": suggestions}

        external = await ctx.call(self.config.analysis.diagnostics_tool, {
            "file_path": file_path,
            "check_type": "all",
            "include_suggestions": True,
        })
        diagnostics = (external or {}).get("diagnostics", {})
        for key, severity in (("errors", "error"), ("warnings", "warning"), ("suggestions", "suggestion")):
            for item in diagnostics.get(key, []):
                code = item.get("code")
                message = f"TS{code}: {item.get('message', '')}" if code else str(item.get("message", ""))
                line = (item.get("position") or {}).get("line", item.get("line", 0))
                buckets[severity].append(Finding(message, line, severity).to_dict())

        if content is None:
            content = (await self.inspect(file_path))["fileContent"]
        if content is not None:
            lines = content.splitlines()
            for rule in self.diagnostic_rules:
                for finding in rule(lines):
                    buckets.setdefault(finding.severity, suggestions).append(finding.to_dict())

        log_info(f"Diagnosis of {file_path}: {len(errors)} errors, {len(warnings)} warnings, {len(suggestions)} suggestions")
        return {"phase": "diagnosis", "errors": errors, "warnings": warnings, "suggestions": suggestions}

    # --- Execution ---

    def plan_solutions(self, diagnosis: Dict[str, Any], content: Optional[str]) -> List[Dict[str, Any]]:
        lines = content.splitlines() if content else []
        solutions: List[Dict[str, Any]] = []

        for item in diagnosis.get("errors", []):
            line = item.get("line", 0)
            solution = {"type": "fix", "description": f"Fix error on line {line}: {item.get('message', '')}"}
            if 0 < line <= len(lines):
                solution["code"] = lines[line - 1].strip()
            solutions.append(solution)
        for item in diagnosis.get("warnings", []):
            solutions.append({
                "type": "review",
                "description": f"Review warning on line {item.get('line', 0)}: {item.get('message', '')}",
            })
        for item in diagnosis.get("suggestions", []):
            solutions.append({
                "type": "best_practice",
                "description": f"Consider on line {item.get('line', 0)}: {item.get('message', '')}",
            })

        solutions.append({"type": "recommendation", "description": CLOSING_RECOMMENDATION})
        return solutions

    async def execute(
        self,
        request: CodeIntelligenceRequest,
        ctx: ToolContext,
        diagnosis: Optional[Dict[str, Any]] = None,
        content: Optional[str] = None,
    ) -> Dict[str, Any]:
        if diagnosis is None:
            diagnosis = request.diagnosis_results
        if content is None:
            content = (await self.inspect(request.file_path))["fileContent"]
        if diagnosis is None:
            diagnosis = await self.diagnose(request.file_path, ctx, content=content)

        return {
            "phase": "execution",
            "solutions": self.plan_solutions(diagnosis, content),
            "priority": request.priority_level or "P2",
        }

    # --- Conflict check ---

    async def _load_contracts(self, ctx: ToolContext) -> Dict[str, Optional[str]]:
        documents: Dict[str, Optional[str]] = {}
        for name, (category, file_name) in CONTRACT_DOCUMENTS.items():
            try:
                result = await ctx.call("memory_bank_manager", {
                    "action": "read",
                    "file_category": category,
                    "file_name": file_name,
                })
                documents[name] = result.get("content")
            except Exception as e:
                log_warn(f"Conflict check could not read {category}/{file_name}: {e}")
                documents[name] = None
        return documents

    async def check_conflicts(self, proposed_change: str, ctx: ToolContext) -> Dict[str, Any]:
        documents = await self._load_contracts(ctx)
        conflict_ctx = ConflictContext(documents=documents, max_change_lines=self.config.analysis.max_change_lines)
        conflicts = run_conflict_rules(proposed_change, conflict_ctx, self.conflict_rules)
        if conflicts:
            log_warn(f"Conflict check found {len(conflicts)} conflicts")
        return {"phase": "conflicts", "conflicts": [c.to_dict() for c in conflicts]}

    # --- Full pipeline ---

    async def run_all(self, request: CodeIntelligenceRequest, ctx: ToolContext) -> Dict[str, Any]:
        inspection = await self.inspect(request.file_path)
        content = inspection["fileContent"]
        diagnosis = await self.diagnose(request.file_path, ctx, content=content)
        execution = await self.execute(request, ctx, diagnosis=diagnosis, content=content)
        change = request.proposed_change or json.dumps(execution["solutions"], indent=2)
        conflicts = await self.check_conflicts(change, ctx)

        return {
            "inspection": inspection,
            "diagnosis": diagnosis,
            "execution": execution,
            "conflicts": conflicts,
            "summary": {
                "timestamp": utc_now_iso(),
                "file": request.file_path,
                "priority": request.priority_level or "P2",
            },
        }

    # --- Tool handlers ---

    async def analyze(self, request: CodeIntelligenceRequest, ctx: ToolContext) -> Dict[str, Any]:
        """Handler for code_intelligence_analyze."""
        log_info(f"Starting code intelligence analysis phase: {request.phase}")
        phase = request.phase
        if phase == "inspection":
            return await self.inspect(request.file_path)
        if phase == "diagnosis":
            return await self.diagnose(request.file_path, ctx)
        if phase == "execution":
            return await self.execute(request, ctx)
        if phase == "conflicts":
            change = request.proposed_change
            if change is None:
                execution = await self.execute(request, ctx)
                change = json.dumps(execution["solutions"], indent=2)
            return await self.check_conflicts(change, ctx)
        return await self.run_all(request, ctx)

    async def generate_memory_map(self, request: MemoryMapRequest, ctx: ToolContext) -> Dict[str, Any]:
        """Handler for generate_memory_map."""
        inspection = await self.inspect(request.file_path)
        dependencies = inspection["dependencies"]
        document = (
            "# Dependency Map\n\n"
            f"Generated {utc_now_iso()} from `{request.file_path}`.\n\n"
            "```mermaid\n"
            f"{render_mermaid(request.file_path, dependencies)}\n"
            "```\n"
        )
        result = await ctx.call("memory_bank_manager", {
            "action": "write",
            "file_category": "technical",
            "file_name": DEPENDENCY_MAP_FILE,
            "content": document,
        })
        log_info(f"Memory map for {request.file_path} written with {len(dependencies)} dependencies")
        return {"memoryMapPath": result.get("path"), "dependencies": dependencies}
