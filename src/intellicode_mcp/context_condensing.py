"""
Context condensing - file-level priority condensing of memory documents.

Each target file is read from the memory bank (category inferred from its
name), backed up, and condensed by priority:
- P0 (code modifications, handover decisions, plans, roadmap): kept whole
- P1 (memory bank updates, conflict resolution): truncated by 30%
- P2 (everything else): summarized

A review draft goes to drafts/ and the final document to
auto_generated/docs/. Unreadable files are condensed from a placeholder so
one missing file never fails the batch.
"""

import math
from dataclasses import dataclass, asdict
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from .config import Config
from .mcp_logger import log_info, log_warn
from .models import ContextCondensingRequest
from .time_utils import fs_safe_timestamp, today_str
from .tool_registry import ToolContext

# (substring, category), first match wins
CATEGORY_HINTS: List[Tuple[str, str]] = [
    ("project-brief", "core"),
    ("productContext", "core"),
    ("activeContext", "core"),
    ("techContext", "core"),
    ("tech-context", "core"),
    ("system-patterns", "core"),
    ("project-plan", "planning"),
    ("roadmap", "planning"),
    ("error-log", "technical"),
    ("dependency-map", "technical"),
    ("api-contracts", "technical"),
    ("analysis-", "technical"),
    ("session-", "auto_generated"),
    ("daily-digest", "auto_generated"),
    ("memory-audit", "auto_generated"),
]

P0_MARKERS = ("code_modifications", "handover_decisions", "project-plan", "roadmap")
P1_MARKERS = ("memory_bank_updates", "conflict-resolution")

P1_REDUCTION = 0.3
P2_REDUCTION = 0.6


@dataclass
class CondensedFile:
    file: str
    original_size: int
    condensed_size: int
    condensed_content: str
    priority: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def infer_category(file_path: str) -> str:
    for hint, category in CATEGORY_HINTS:
        if hint in file_path:
            return category
    return "dynamic"


def file_priority(file_path: str) -> str:
    if any(marker in file_path for marker in P0_MARKERS):
        return "P0"
    if any(marker in file_path for marker in P1_MARKERS):
        return "P1"
    return "P2"


def condense(file_path: str, content: str, rate: float) -> CondensedFile:
    """
    Condense one document.

    rate scales the P2 summary: it keeps 1 - P2_REDUCTION * rate of the text.
    """
    priority = file_priority(file_path)
    size = len(content)
    if priority == "P0":
        condensed = content
    elif priority == "P1":
        condensed = content[: math.floor(size * (1 - P1_REDUCTION))]
    else:
        keep = math.floor(size * (1 - P2_REDUCTION * rate))
        condensed = f"Summarized content for {file_path}: {content[:keep]}..."
    return CondensedFile(
        file=file_path,
        original_size=size,
        condensed_size=len(condensed),
        condensed_content=condensed,
        priority=priority,
    )


def render_draft(results: List[CondensedFile]) -> str:
    rows = "\n".join(f"| {r.file} | {r.original_size} | {r.condensed_size} | {r.priority} |" for r in results)
    samples = "\n".join(f"--- {r.file} ({r.priority}) ---\n{r.condensed_content}\n" for r in results)
    return (
        "[SESSION SUMMARY DRAFT]\n"
        "Condensed context pending review.\n\n"
        "### Condensing Results\n\n"
        "| File | Original Size | Condensed Size | Priority |\n"
        "|---|---|---|---|\n"
        f"{rows}\n\n"
        "### Condensed Content\n"
        f"{samples}"
    )


class ContextCondenser:
    def __init__(self, config: Config):
        self.config = config

    async def _read(self, file_path: str, ctx: ToolContext) -> Tuple[str, Optional[str]]:
        """(content, error). Failed reads yield placeholder content."""
        category = infer_category(file_path)
        name = PurePosixPath(file_path.replace("\\", "/")).name
        try:
            result = await ctx.call("memory_bank_manager", {
                "action": "read",
                "file_category": category,
                "file_name": name,
            })
            return result.get("content") or "", None
        except Exception as e:
            log_warn(f"Could not read file {file_path} from {category}: {e}")
            return f"Placeholder content for {file_path} (read failed: {e})", str(e)

    async def condense(self, request: ContextCondensingRequest, ctx: ToolContext) -> Dict[str, Any]:
        log_info(f"Starting context condensing for files: {', '.join(request.target_files)}")
        rate = request.compression_rate
        if rate is None:
            rate = self.config.priorities.default_compression_rate

        contents = []
        backup_parts = []
        for file_path in request.target_files:
            content, error = await self._read(file_path, ctx)
            contents.append(content)
            header = f"--- FILE: {file_path} (Read Failed) ---" if error else f"--- FILE: {file_path} ---"
            backup_parts.append(f"{header}\n{'' if error else content}\n")

        backup = await ctx.call("memory_bank_manager", {
            "action": "write",
            "file_category": "archive",
            "file_name": f"context-backup-{fs_safe_timestamp()}.md",
            "content": "\n".join(backup_parts),
        })
        log_info(f"Pre-condensing backup saved to {backup.get('path')}")

        results = [condense(path, content, rate) for path, content in zip(request.target_files, contents)]

        date = today_str()
        draft = render_draft(results)
        await ctx.call("memory_bank_manager", {
            "action": "write",
            "file_category": "drafts",
            "file_name": f"session-{date}.md",
            "content": draft,
        })

        final = f"# Session Summary - {date}\n\n" + draft.replace(
            "[SESSION SUMMARY DRAFT]\nCondensed context pending review.", "## Final Session Summary"
        )
        final_doc = await ctx.call("memory_bank_manager", {
            "action": "write",
            "file_category": "auto_generated",
            "file_name": f"docs/session-{date}.md",
            "content": final,
        })
        log_info(f"Documentation saved to {final_doc.get('path')}")

        return {
            "status": "success",
            "message": "Context condensing completed and summary generated.",
            "results": [r.to_dict() for r in results],
        }
