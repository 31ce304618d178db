"""Daily digest: progress, decisions, errors and deadlines in one dated report."""

from typing import Any, Dict, List, Tuple

from .mcp_logger import log_error, log_info
from .models import DailyDigestRequest
from .time_utils import today_str, utc_now_iso
from .tool_registry import ToolContext

# (section title, category, file, fallback text)
DIGEST_SOURCES: List[Tuple[str, str, str, str]] = [
    ("Completed Tasks", "dynamic", "progress.md", "No completed tasks recorded."),
    ("Key Decisions", "dynamic", "handover.md", "No key decisions recorded."),
    ("Errors", "technical", "error-log.md", "No errors recorded."),
    ("Deadlines", "planning", "project-plan.md", "No deadlines recorded."),
]


async def generate_daily_digest(request: DailyDigestRequest, ctx: ToolContext) -> Dict[str, Any]:
    """Handler for daily_digest_generator. Any read failure aborts the digest."""
    log_info("Generating daily digest")
    date = today_str()
    sections = [f"# Daily Digest - {date}", ""]

    try:
        for title, category, file_name, fallback in DIGEST_SOURCES:
            result = await ctx.call("memory_bank_manager", {
                "action": "read",
                "file_category": category,
                "file_name": file_name,
            })
            body = (result.get("content") or "").strip()
            sections += [f"## {title}", body or fallback, ""]

        written = await ctx.call("memory_bank_manager", {
            "action": "write",
            "file_category": "auto_generated",
            "file_name": f"daily-digest-{date}.md",
            "content": "\n".join(sections),
        })
    except Exception as e:
        log_error("Failed to generate daily digest", str(e))
        raise

    return {
        "generated": True,
        "timestamp": utc_now_iso(),
        "path": written.get("path"),
        "message": "Daily digest generated successfully.",
    }
