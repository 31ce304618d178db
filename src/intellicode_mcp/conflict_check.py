"""
Conflict check - proposed changes vs. project contract documents.

Rules are independent and additive. Each rule declares which contract
documents it needs; when one of those could not be read the rule is skipped
and the others still run.

Contract documents (memory bank):
- technical/api-contracts.md  - API shapes, declared naming convention
- core/system-patterns.md     - architecture rules, sanctioned storage access

Conflict types: schema_break, plan_violation, unsafe_type.
"""

import re
from dataclasses import dataclass, asdict, field
from typing import Any, Callable, Dict, List, Optional, Tuple

API_CONTRACTS = "api_contracts"
SYSTEM_PATTERNS = "system_patterns"

CONTRACT_DOCUMENTS: Dict[str, Tuple[str, str]] = {
    API_CONTRACTS: ("technical", "api-contracts.md"),
    SYSTEM_PATTERNS: ("core", "system-patterns.md"),
}


@dataclass
class Conflict:
    message: str
    type: str  # schema_break, plan_violation, unsafe_type
    priority: str  # P0, P1, P2
    rule_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ConflictContext:
    """What a rule sees besides the change text."""
    documents: Dict[str, Optional[str]] = field(default_factory=dict)
    max_change_lines: int = 200

    def document(self, name: str) -> Optional[str]:
        return self.documents.get(name)


@dataclass
class ConflictRule:
    rule_id: str
    check: Callable[[str, ConflictContext], List[Conflict]]
    requires: Tuple[str, ...] = ()


# === Rules ===

_UNSAFE_TYPE_RE = re.compile(r":\s*any\b|\bas\s+any\b|<any>|\bany\[\]")

_SECRET_RE = re.compile(
    r"\b\w*(api[_-]?key|secret|password|passwd|token|private[_-]?key)\w*\s*[:=]\s*\\?[\"'][^\"'\\]{3,}",
    re.IGNORECASE,
)

_DECLARATION_RE = re.compile(r"\b(?:const|let|var|function|def|class)\s+([A-Za-z_$][\w$]*)")

_AWAIT_RE = re.compile(r"\bawait\b")
_GUARD_RE = re.compile(r"\btry\b|\.catch\(|\bexcept\b")

_DIRECT_FS_RE = re.compile(
    r"(fs\.(?:readFile|writeFile|appendFile|unlink|rename)\w*|\bopen\()[^\n]*(\.intellicode|memory[/\\])"
)

_CONVENTIONS = ("camelCase", "snake_case", "PascalCase")


def check_unsafe_types(change: str, ctx: ConflictContext) -> List[Conflict]:
    if not _UNSAFE_TYPE_RE.search(change):
        return []
    return [Conflict(
        message="Unsafe dynamic typing ('any') in proposed change",
        type="unsafe_type",
        priority="P1",
        rule_id="unsafe_type",
    )]


def declared_convention(contracts: str) -> Optional[str]:
    """First naming convention mentioned in the contracts document, if any."""
    lowered = contracts.lower()
    found = [(lowered.find(c.lower()), c) for c in _CONVENTIONS if c.lower() in lowered]
    if not found:
        return None
    return min(found)[1]


def _matches_convention(identifier: str, convention: str) -> bool:
    if identifier.isupper() or len(identifier) == 1:
        # CONSTANTS and single letters are exempt
        return True
    if convention == "camelCase":
        return "_" not in identifier.strip("_") and not identifier[0].isupper()
    if convention == "snake_case":
        return identifier == identifier.lower()
    if convention == "PascalCase":
        return identifier[0].isupper() and "_" not in identifier
    return True


def check_naming_convention(change: str, ctx: ConflictContext) -> List[Conflict]:
    convention = declared_convention(ctx.document(API_CONTRACTS) or "")
    if convention is None:
        return []

    conflicts = []
    seen = set()
    for identifier in _DECLARATION_RE.findall(change):
        if identifier in seen or _matches_convention(identifier, convention):
            continue
        seen.add(identifier)
        conflicts.append(Conflict(
            message=f"Identifier '{identifier}' does not follow the {convention} convention declared in api-contracts.md",
            type="plan_violation",
            priority="P2",
            rule_id="naming_convention",
        ))
    return conflicts


def check_unguarded_async(change: str, ctx: ConflictContext) -> List[Conflict]:
    if _AWAIT_RE.search(change) and not _GUARD_RE.search(change):
        return [Conflict(
            message="Asynchronous call without error handling (no try/catch around await)",
            type="plan_violation",
            priority="P1",
            rule_id="unguarded_async",
        )]
    return []


def check_hardcoded_secrets(change: str, ctx: ConflictContext) -> List[Conflict]:
    match = _SECRET_RE.search(change)
    if not match:
        return []
    return [Conflict(
        message=f"Hardcoded secret detected ({match.group(1)}); load credentials from the environment",
        type="schema_break",
        priority="P0",
        rule_id="hardcoded_secret",
    )]


def check_changeset_size(change: str, ctx: ConflictContext) -> List[Conflict]:
    line_count = len(change.splitlines())
    if line_count <= ctx.max_change_lines:
        return []
    return [Conflict(
        message=f"Changeset too large ({line_count} lines, limit {ctx.max_change_lines}); split it up",
        type="plan_violation",
        priority="P2",
        rule_id="oversized_changeset",
    )]


def check_memory_bank_bypass(change: str, ctx: ConflictContext) -> List[Conflict]:
    if not _DIRECT_FS_RE.search(change):
        return []
    return [Conflict(
        message="Direct file access to memory storage; use memory_bank_manager instead",
        type="plan_violation",
        priority="P1",
        rule_id="memory_bank_bypass",
    )]


DEFAULT_CONFLICT_RULES: List[ConflictRule] = [
    ConflictRule("unsafe_type", check_unsafe_types),
    ConflictRule("naming_convention", check_naming_convention, requires=(API_CONTRACTS,)),
    ConflictRule("unguarded_async", check_unguarded_async),
    ConflictRule("hardcoded_secret", check_hardcoded_secrets),
    ConflictRule("oversized_changeset", check_changeset_size),
    ConflictRule("memory_bank_bypass", check_memory_bank_bypass, requires=(SYSTEM_PATTERNS,)),
]


def run_conflict_rules(change: str, ctx: ConflictContext, rules: List[ConflictRule]) -> List[Conflict]:
    """Apply every rule whose documents are available. Results accumulate."""
    conflicts: List[Conflict] = []
    for rule in rules:
        if any(ctx.document(doc) is None for doc in rule.requires):
            continue
        conflicts.extend(rule.check(change, ctx))
    return conflicts
