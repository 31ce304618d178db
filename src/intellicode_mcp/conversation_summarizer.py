"""
Conversation Summarizer - priority bucketing with proportional compression.

Order of operations:
1. Back up the raw transcript to archive/ (before anything is transformed)
2. Bucket lines by configured keywords: P0 first, then P1, else P2
3. Keep P0 verbatim; compress P1 and P2 prose by sentence count
4. Assemble the Markdown summary
5. Optionally pass it through the preferred LLM (failures fall back silently)
6. Save to auto_generated/summaries/ and, if asked, to output_file

Compression: with rate r, P1 keeps 1 - 0.2r of its sentences and P2 keeps
1 - 0.4r. Structural lines (diff markers, file paths, speaker turns, fenced
code) are never compressed.
"""

import asyncio
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from .config import Config
from .integrations.llm_clients import preferred_client
from .mcp_logger import log_info, log_warn
from .models import SummarizerRequest
from .time_utils import fs_safe_timestamp, today_str
from .tool_registry import ToolContext

Enhancer = Callable[[str], Awaitable[str]]

P1_FACTOR = 0.2
P2_FACTOR = 0.4

ENHANCE_PROMPT = (
    "Improve the readability of the following session summary. Keep every "
    "heading, keep the 'Critical Actions' section exactly as written, and do "
    "not invent content.\n\n"
)

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_DIFF_RE = re.compile(r"^(\+\+\+|---|@@|[+-](?=\S))")
_PATH_RE = re.compile(r"(^|\s)[\w.-]*[/\\][\w./\\-]*\.\w{1,6}\b")
_SPEAKER_RE = re.compile(r"^\s*(user|assistant|human|ai|system|developer)\s*:", re.IGNORECASE)
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


def retention_for(priority: str, rate: float) -> float:
    if priority == "P0":
        return 1.0
    factor = P1_FACTOR if priority == "P1" else P2_FACTOR
    return 1.0 - rate * factor


def classify_line(line: str, keywords: Dict[str, Sequence[str]]) -> str:
    """First priority whose keyword occurs in the line, matched case-sensitively."""
    for priority in ("P0", "P1"):
        if any(k in line for k in keywords.get(priority, ()) if k):
            return priority
    return "P2"


def is_structural(line: str) -> bool:
    return bool(
        _DIFF_RE.match(line)
        or _SPEAKER_RE.match(line)
        or _FENCE_RE.match(line)
        or _PATH_RE.search(line)
    )


def split_sentences(text: str) -> List[str]:
    return [s for s in _SENTENCE_SPLIT_RE.split(text.strip()) if s]


def retained_count(sentence_count: int, retention: float) -> int:
    # round() absorbs float noise such as 10 * 0.8 = 8.000000000000002
    return min(sentence_count, math.ceil(round(sentence_count * retention, 9)))


@dataclass
class CompressedBucket:
    text: str
    structural_lines: int = 0
    sentences_in: int = 0
    sentences_kept: int = 0


def compress_lines(lines: List[str], retention: float) -> CompressedBucket:
    """Keep structural lines and fenced blocks verbatim, truncate the prose."""
    structural: List[str] = []
    prose: List[str] = []
    in_fence = False
    for line in lines:
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            structural.append(line)
        elif in_fence or is_structural(line):
            structural.append(line)
        else:
            prose.append(line.strip())

    sentences = split_sentences(" ".join(p for p in prose if p))
    keep = retained_count(len(sentences), retention)
    summary = " ".join(sentences[:keep])
    if keep < len(sentences):
        summary += "..."

    parts = structural + ([summary] if summary else [])
    return CompressedBucket(
        text="\n".join(parts),
        structural_lines=len(structural),
        sentences_in=len(sentences),
        sentences_kept=keep,
    )


@dataclass
class Buckets:
    P0: List[str] = field(default_factory=list)
    P1: List[str] = field(default_factory=list)
    P2: List[str] = field(default_factory=list)


def bucket_transcript(transcript: str, keywords: Dict[str, Sequence[str]]) -> Buckets:
    buckets = Buckets()
    for line in transcript.splitlines():
        if not line.strip():
            continue
        getattr(buckets, classify_line(line, keywords)).append(line)
    return buckets


def _section(title: str, body: str) -> str:
    return f"### {title}\n{body if body else '(none)'}\n"


def build_summary(
    transcript: str,
    keywords: Dict[str, Sequence[str]],
    rate: float,
    summary_type: str,
    date: str,
) -> str:
    buckets = bucket_transcript(transcript, keywords)
    p1 = compress_lines(buckets.P1, retention_for("P1", rate))
    p2 = compress_lines(buckets.P2, retention_for("P2", rate))

    sections = [
        f"# Conversation Summary - {date}\n",
        _section("Critical Actions", "\n".join(buckets.P0)),
        _section("Key Discussions (High Priority)", p1.text),
        _section("General Discussion", p2.text),
    ]
    if summary_type == "detailed":
        sections.append(
            "### Retention Statistics\n"
            f"- Compression rate: {rate}\n"
            f"- P0 lines kept verbatim: {len(buckets.P0)}\n"
            f"- P1 retention: {retention_for('P1', rate):.2f} "
            f"({p1.sentences_kept}/{p1.sentences_in} sentences, {p1.structural_lines} structural lines)\n"
            f"- P2 retention: {retention_for('P2', rate):.2f} "
            f"({p2.sentences_kept}/{p2.sentences_in} sentences, {p2.structural_lines} structural lines)\n"
        )
    return "\n".join(sections)


class ConversationSummarizer:
    def __init__(self, config: Config, enhancer: Optional[Enhancer] = None):
        self.config = config
        self.enhancer = enhancer

    def keywords(self) -> Dict[str, Sequence[str]]:
        priorities = self.config.priorities
        return {"P0": priorities.P0, "P1": priorities.P1, "P2": priorities.P2}

    def _resolve_enhancer(self) -> Optional[Enhancer]:
        if self.enhancer is not None:
            return self.enhancer
        client = preferred_client(self.config.llm_apis)
        return client.acomplete if client else None

    async def enhance(self, document: str) -> str:
        """LLM pass over the summary. Any failure returns the input unchanged."""
        try:
            enhancer = self._resolve_enhancer()
            if enhancer is None:
                return document
            enhanced = await enhancer(ENHANCE_PROMPT + document)
        except Exception as e:
            log_warn(f"Summary enhancement failed, using un-enhanced summary: {e}")
            return document
        if not enhanced or not enhanced.strip():
            return document
        return enhanced

    async def summarize(self, request: SummarizerRequest, ctx: ToolContext) -> Dict[str, object]:
        log_info(f"Starting conversation summarization with type: {request.summary_type}")
        rate = request.override_compression_rate
        if rate is None:
            rate = self.config.priorities.default_compression_rate

        backup = await ctx.call("memory_bank_manager", {
            "action": "write",
            "file_category": "archive",
            "file_name": f"context-backup-{fs_safe_timestamp()}.md",
            "content": request.conversation_history,
        })
        backup_path = backup.get("path")
        log_info(f"Pre-condensing backup saved to {backup_path}")

        summary = build_summary(
            request.conversation_history, self.keywords(), rate, request.summary_type, today_str()
        )
        summary = await self.enhance(summary)

        saved = await ctx.call("memory_bank_manager", {
            "action": "write",
            "file_category": "auto_generated",
            "file_name": f"summaries/session-{today_str()}.md",
            "content": summary,
        })
        saved_paths = [saved.get("path")]

        if request.output_file:
            output = Path(request.output_file)
            await asyncio.to_thread(output.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(output.write_text, summary, encoding="utf-8")
            saved_paths.append(str(output))
            log_info(f"Finalized summary saved to {output}")

        return {"summary": summary, "backup_path": backup_path, "saved_paths": saved_paths}
