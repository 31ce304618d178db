"""
IntelliCode - Tool Request Models

One pydantic model per tool. The router validates raw MCP arguments into
the tool's model before the handler runs, so handlers receive typed
requests and argument errors surface before any side effect.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Enums
# =============================================================================

class Priority(str, Enum):
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"


PRIORITY_RANK = {"P0": 0, "P1": 1, "P2": 2}


class Phase(str, Enum):
    inspection = "inspection"
    diagnosis = "diagnosis"
    execution = "execution"
    conflicts = "conflicts"
    all = "all"


class MemoryAction(str, Enum):
    read = "read"
    write = "write"
    update = "update"
    archive = "archive"
    search = "search"
    external_search = "external_search"
    process_multimedia = "process_multimedia"
    audit_daily = "audit_daily"


class FileCategory(str, Enum):
    core = "core"
    dynamic = "dynamic"
    planning = "planning"
    technical = "technical"
    auto_generated = "auto_generated"
    archive = "archive"
    drafts = "drafts"


class WorkflowType(str, Enum):
    full_analysis = "full_analysis"
    quick_check = "quick_check"
    context_condensing = "context_condensing"
    daily_digest = "daily_digest"
    generate_memory_map = "generate_memory_map"


class SummaryType(str, Enum):
    concise = "concise"
    detailed = "detailed"


class CheckType(str, Enum):
    syntax = "syntax"
    semantic = "semantic"
    all = "all"


class SearchType(str, Enum):
    general = "general"
    code = "code"
    documentation = "documentation"
    error_solution = "error_solution"


# =============================================================================
# Base
# =============================================================================

class ToolRequest(BaseModel):
    """Common settings: enums arrive in handlers as plain strings."""
    model_config = ConfigDict(use_enum_values=True, extra="ignore")


# =============================================================================
# Core tools
# =============================================================================

class CodeIntelligenceRequest(ToolRequest):
    phase: Phase
    file_path: str = Field(..., min_length=1)
    context_files: List[str] = Field(default_factory=list)
    priority_level: Optional[Priority] = None
    diagnosis_results: Optional[Dict[str, Any]] = Field(
        default=None, description="Precomputed diagnosis to base the execution phase on"
    )
    proposed_change: Optional[str] = Field(
        default=None, description="Change text to check for conflicts (phase=conflicts)"
    )


_NEEDS_CATEGORY = {"read", "write", "update", "archive", "search", "process_multimedia"}
_NEEDS_NAME = {"read", "write", "update", "process_multimedia"}


class MemoryBankRequest(ToolRequest):
    action: MemoryAction
    file_category: Optional[FileCategory] = None
    file_name: Optional[str] = None
    content: Optional[str] = None
    search_query: Optional[str] = None
    source_path: Optional[str] = Field(default=None, description="Source file for process_multimedia")

    @model_validator(mode="after")
    def _check_action_fields(self):
        if self.action in _NEEDS_CATEGORY and not self.file_category:
            raise ValueError(f"file_category is required for {self.action} operation")
        if self.action in _NEEDS_NAME and not self.file_name:
            raise ValueError(f"file_name is required for {self.action} operation")
        if self.action == "process_multimedia" and not self.source_path:
            raise ValueError("source_path is required for process_multimedia operation")
        return self


class MemoryMapRequest(ToolRequest):
    file_path: str = Field(..., min_length=1)


class WorkflowRequest(ToolRequest):
    workflow_type: WorkflowType
    target_files: List[str] = Field(default_factory=list)
    priority_override: Optional[Priority] = None
    include_web_search: bool = False
    compression_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_targets(self):
        if self.workflow_type != "daily_digest" and not self.target_files:
            raise ValueError(f"target_files is required for workflow type {self.workflow_type}")
        return self


class SummarizerRequest(ToolRequest):
    conversation_history: str
    summary_type: SummaryType
    output_file: Optional[str] = None
    override_compression_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)


# =============================================================================
# Integrations and helpers
# =============================================================================

class ESLintRequest(ToolRequest):
    file_path: str = Field(..., min_length=1)
    auto_fix: bool = False
    rules_override: Optional[Dict[str, Any]] = None


class TypeScriptRequest(ToolRequest):
    file_path: str = Field(..., min_length=1)
    check_type: CheckType
    include_suggestions: bool = True


class WebSearchRequest(ToolRequest):
    query: str = Field(..., min_length=1)
    search_type: SearchType
    max_results: int = Field(default=10, ge=1, le=100)


class SequentialThinkingRequest(ToolRequest):
    problem_statement: str = Field(..., min_length=1)
    thinking_depth: int = Field(default=3, ge=1)
    include_alternatives: bool = True
    thoughtNumber: Optional[int] = None
    nextThoughtNeeded: Optional[str] = None
    isRevision: Optional[bool] = None
    branchId: Optional[str] = None


class ContextCondensingRequest(ToolRequest):
    target_files: List[str] = Field(..., min_length=1)
    compression_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class DailyDigestRequest(ToolRequest):
    pass
