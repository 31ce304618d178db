"""
Tests for conflict_check.py

Run with: python -m pytest tests/test_conflict_check.py -v
"""

import asyncio

from intellicode_mcp.conflict_check import (
    API_CONTRACTS,
    DEFAULT_CONFLICT_RULES,
    SYSTEM_PATTERNS,
    ConflictContext,
    check_changeset_size,
    check_hardcoded_secrets,
    check_memory_bank_bypass,
    check_naming_convention,
    check_unguarded_async,
    check_unsafe_types,
    declared_convention,
    run_conflict_rules,
)

ALL_DOCS = {API_CONTRACTS: "Identifiers use camelCase.", SYSTEM_PATTERNS: "All storage goes through the memory bank."}


def conflicts_for(change, documents=None, max_change_lines=200):
    ctx = ConflictContext(documents=documents if documents is not None else ALL_DOCS, max_change_lines=max_change_lines)
    return run_conflict_rules(change, ctx, DEFAULT_CONFLICT_RULES)


class TestRules:
    """Each rule in isolation."""

    def test_hardcoded_secret_is_p0_schema_break(self):
        conflicts = check_hardcoded_secrets('API_KEY = "abc123"', ConflictContext())
        assert len(conflicts) == 1
        assert conflicts[0].type == "schema_break"
        assert conflicts[0].priority == "P0"

    def test_secret_inside_serialized_json(self):
        change = '[{"code": "const API_KEY = \\"abc123\\";"}]'
        assert check_hardcoded_secrets(change, ConflictContext())

    def test_secret_read_from_environment_is_fine(self):
        assert check_hardcoded_secrets("const apiKey = process.env.API_KEY;", ConflictContext()) == []

    def test_unsafe_any(self):
        for change in ("let x: any = 1;", "const y = value as any;", "const z = <any>value;"):
            conflicts = check_unsafe_types(change, ConflictContext())
            assert conflicts[0].type == "unsafe_type"
            assert conflicts[0].priority == "P1"

    def test_company_name_is_not_any_type(self):
        assert check_unsafe_types("const company = 'anything';", ConflictContext()) == []

    def test_unguarded_await(self):
        conflicts = check_unguarded_async("const data = await fetch(url);", ConflictContext())
        assert conflicts[0].type == "plan_violation"
        assert conflicts[0].priority == "P1"

    def test_guarded_await(self):
        change = "try {\n  const data = await fetch(url);\n} catch (e) {\n  log(e);\n}"
        assert check_unguarded_async(change, ConflictContext()) == []

    def test_oversized_changeset(self):
        ctx = ConflictContext(max_change_lines=2)
        assert check_changeset_size("a\nb", ctx) == []
        conflicts = check_changeset_size("a\nb\nc", ctx)
        assert conflicts[0].priority == "P2"
        assert "3 lines" in conflicts[0].message

    def test_memory_bank_bypass(self):
        change = 'fs.writeFileSync(".intellicode/memory/core/brief.md", text);'
        conflicts = check_memory_bank_bypass(change, ConflictContext(documents=ALL_DOCS))
        assert conflicts[0].rule_id == "memory_bank_bypass"

    def test_naming_convention_from_contracts(self):
        ctx = ConflictContext(documents=ALL_DOCS)
        conflicts = check_naming_convention("const user_name = 1;\nconst userId = 2;\nconst MAX_SIZE = 3;", ctx)
        assert [c.rule_id for c in conflicts] == ["naming_convention"]
        assert "user_name" in conflicts[0].message

    def test_declared_convention_takes_first_mention(self):
        assert declared_convention("Fields are snake_case; classes are PascalCase.") == "snake_case"
        assert declared_convention("No convention here.") is None


class TestRunConflictRules:
    """Rules are additive and skip when their documents are missing."""

    def test_clean_change(self):
        assert conflicts_for("const total = sum(values);") == []

    def test_results_accumulate(self):
        change = 'const api_token = "secret-value";\nlet raw: any = await load();'
        kinds = {c.rule_id for c in conflicts_for(change)}
        assert {"hardcoded_secret", "unsafe_type", "unguarded_async", "naming_convention"} <= kinds

    def test_missing_documents_skip_dependent_rules(self):
        change = 'const user_name = 1;\nfs.writeFileSync(".intellicode/memory/x.md", d);'
        conflicts = conflicts_for(change, documents={API_CONTRACTS: None, SYSTEM_PATTERNS: None})
        assert conflicts == []

    def test_contracts_read_from_memory_bank(self, seeded_router, seeded_config):
        asyncio.run(seeded_router.invoke("memory_bank_manager", {
            "action": "write",
            "file_category": "technical",
            "file_name": "api-contracts.md",
            "content": "# API Contracts\n\nAll identifiers are camelCase.\n",
        }))
        result = asyncio.run(seeded_router.invoke("code_intelligence_analyze", {
            "phase": "conflicts",
            "file_path": "unused.ts",
            "proposed_change": "function load_user() {}",
        }))
        assert result["phase"] == "conflicts"
        assert [c["rule_id"] for c in result["conflicts"]] == ["naming_convention"]

    def test_missing_contracts_do_not_fail(self, router):
        result = asyncio.run(router.invoke("code_intelligence_analyze", {
            "phase": "conflicts",
            "file_path": "unused.ts",
            "proposed_change": "function load_user() {}",
        }))
        assert result == {"phase": "conflicts", "conflicts": []}
