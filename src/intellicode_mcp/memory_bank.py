"""
Memory Bank - categorized, file-backed document store.

Layout under the memory root:
    core/ dynamic/ planning/ technical/ auto_generated/   live documents
    <archive_path>/<category>/<file>.<timestamp>           archived copies
    drafts/                                                unreviewed drafts

A record is addressed by (category, file_name). The category is one
directory segment ("archive" maps to the configured archive path). file_name
may carry sub-paths (docs/session-x.md) but can never resolve outside the
memory root.

Blocking filesystem work runs in a worker thread so the event loop stays
free; public methods are coroutines.
"""

import asyncio
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import MEMORY_CATEGORIES
from .errors import InvalidArgumentsError, RecordNotFoundError
from .mcp_logger import log_error, log_info, log_warn
from .time_utils import fs_safe_timestamp, human_timestamp, utc_now_iso

# Categories the tool surface accepts. Internal callers may use any segment.
ALL_CATEGORIES = MEMORY_CATEGORIES + ("archive", "drafts")

AUDIT_FILE_NAME = "memory-audit.md"
PREVIEW_RADIUS = 50

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
# In-flight temp files left by _write_sync
_TEMP_RE = re.compile(r"^\..+\.[A-Za-z0-9_]+\.tmp$")


@dataclass
class ArchiveEntry:
    """Outcome of archiving a single file."""
    file: str
    archivedPath: Optional[str]
    status: str  # success, failed
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        if d["error"] is None:
            d.pop("error")
        return d


@dataclass
class SearchHit:
    file: str
    category: str
    preview: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MemoryBank:
    """File-backed key/value store: (category, file_name) -> text."""

    def __init__(self, root_dir, archive_path: str = "archive"):
        self.root = Path(root_dir)
        self.archive_path = archive_path

    # === Paths ===

    def category_dir(self, category: str) -> Path:
        if not category or not _SEGMENT_RE.match(category) or category in (".", ".."):
            raise InvalidArgumentsError(f"Invalid memory category: {category!r}")
        if category == "archive":
            return self.root / self.archive_path
        return self.root / category

    def path_for(self, category: str, file_name: str) -> Path:
        """Resolve a record path, refusing anything outside the memory root."""
        if not file_name:
            raise InvalidArgumentsError("file_name is required")
        base = self.category_dir(category)
        candidate = (base / file_name).resolve()
        root = self.root.resolve()
        try:
            candidate.relative_to(root)
        except ValueError:
            raise InvalidArgumentsError(f"Path escapes memory root: {category}/{file_name}")
        return candidate

    # === Sync implementations (run in worker threads) ===

    def _read_sync(self, category: str, file_name: str) -> str:
        path = self.path_for(category, file_name)
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise RecordNotFoundError(category, file_name, str(path))

    def _write_sync(self, category: str, file_name: str, content: str) -> str:
        path = self.path_for(category, file_name)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Temp file + replace so readers never see a half-written record
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        return str(path)

    def _list_sync(self, category: str) -> List[str]:
        """Every file under the category (sub-directories included), as relative paths."""
        directory = self.category_dir(category)
        if not directory.is_dir():
            return []
        return sorted(
            p.relative_to(directory).as_posix()
            for p in directory.rglob("*")
            if p.is_file() and not _TEMP_RE.match(p.name)
        )

    def _archive_sync(self, category: str) -> List[ArchiveEntry]:
        source_dir = self.category_dir(category)
        archive_dir = self.category_dir("archive") / category
        timestamp = fs_safe_timestamp()

        files = self._list_sync(category)
        if not files:
            log_info(f"Nothing to archive in {source_dir}")
            return []
        archive_dir.mkdir(parents=True, exist_ok=True)

        results: List[ArchiveEntry] = []
        for name in files:
            source = source_dir / name
            dest = archive_dir / f"{name}.{timestamp}"
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(source), str(dest))
                results.append(ArchiveEntry(file=name, archivedPath=str(dest), status="success"))
            except OSError as e:
                log_error(f"Failed to archive file {source}: {e}")
                results.append(ArchiveEntry(file=name, archivedPath=None, status="failed", error=str(e)))
        return results

    def _search_sync(self, category: str, query: str) -> List[SearchHit]:
        hits: List[SearchHit] = []
        directory = self.category_dir(category)
        for name in self._list_sync(category):
            path = directory / name
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                log_warn(f"Could not read file {path} during search: {e}")
                continue

            index = content.find(query)
            if index < 0:
                continue
            start = max(0, index - PREVIEW_RADIUS)
            end = min(len(content), index + len(query) + PREVIEW_RADIUS)
            hits.append(SearchHit(file=name, category=category, preview=content[start:end]))
        return hits

    def _import_sync(self, category: str, file_name: str, source_path: str) -> str:
        source = Path(source_path)
        if not source.is_file():
            raise RecordNotFoundError(category, file_name, str(source))
        dest = self.path_for(category, file_name)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)
        return str(dest)

    def _audit_sync(self, report_name: str) -> Dict[str, Any]:
        lines = [f"# Memory Audit - {utc_now_iso()}", ""]
        categories: Dict[str, List[Dict[str, Any]]] = {}
        success = True

        for category in ALL_CATEGORIES:
            lines.append(f"## {category}")
            directory = self.category_dir(category)
            entries: List[Dict[str, Any]] = []
            if not directory.is_dir():
                success = False
                lines.append("- FAILED: category directory missing")
                categories[category] = [{"status": "failed", "error": "missing"}]
                lines.append("")
                continue
            try:
                files = sorted(p for p in directory.rglob("*") if p.is_file())
            except OSError as e:
                success = False
                lines.append(f"- FAILED: could not list category ({e})")
                categories[category] = [{"status": "failed", "error": str(e)}]
                lines.append("")
                continue

            for path in files:
                rel = str(path.relative_to(directory))
                try:
                    stat = path.stat()
                    with open(path, "rb") as f:
                        f.read(1)
                    modified = datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds")
                    entries.append({"file": rel, "size": stat.st_size, "modified": modified, "status": "ok"})
                    lines.append(f"- {rel} | {stat.st_size} bytes | modified {modified}")
                except OSError as e:
                    success = False
                    entries.append({"file": rel, "status": "failed", "error": str(e)})
                    lines.append(f"- {rel} | FAILED: {e}")
            if not files:
                lines.append("- (empty)")
            categories[category] = entries
            lines.append("")

        lines.append(f"Status: {'OK' if success else 'PARTIAL FAILURE'}")
        report_path = self._write_sync("auto_generated", report_name, "\n".join(lines) + "\n")
        message = (
            "Daily memory audit completed."
            if success else
            "Daily memory audit completed with failures; see report."
        )
        return {
            "success": success,
            "audit_log_path": report_path,
            "message": message,
            "categories": categories,
        }

    # === Public API ===

    async def read(self, category: str, file_name: str) -> str:
        return await asyncio.to_thread(self._read_sync, category, file_name)

    async def write(self, category: str, file_name: str, content: Optional[str]) -> str:
        if content is None:
            raise InvalidArgumentsError("Content is required for write operation")
        return await asyncio.to_thread(self._write_sync, category, file_name, content)

    async def update(self, category: str, file_name: str, content: Optional[str]) -> str:
        """Overwrite with a 'Last updated' footer. Returns the footer timestamp."""
        if content is None:
            raise InvalidArgumentsError("Content is required for update operation")
        timestamp = human_timestamp()
        await asyncio.to_thread(
            self._write_sync, category, file_name, f"{content}\n\nLast updated: {timestamp}"
        )
        return timestamp

    async def archive(self, category: str) -> List[Dict[str, Any]]:
        entries = await asyncio.to_thread(self._archive_sync, category)
        return [e.to_dict() for e in entries]

    async def search(self, category: str, query: Optional[str]) -> List[Dict[str, Any]]:
        if not query:
            raise InvalidArgumentsError("Search query is required for search operation")
        hits = await asyncio.to_thread(self._search_sync, category, query)
        return [h.to_dict() for h in hits]

    async def list_files(self, category: str) -> List[str]:
        return await asyncio.to_thread(self._list_sync, category)

    async def import_file(self, category: str, file_name: str, source_path: str) -> str:
        return await asyncio.to_thread(self._import_sync, category, file_name, source_path)

    async def audit_daily(self, report_name: str = AUDIT_FILE_NAME) -> Dict[str, Any]:
        return await asyncio.to_thread(self._audit_sync, report_name)


class MemoryBankManager:
    """Handler for the memory_bank_manager tool: one action per request."""

    def __init__(self, bank: MemoryBank):
        self.bank = bank

    async def handle(self, request, ctx) -> Dict[str, Any]:
        action = request.action
        category = request.file_category
        log_info(f"Memory bank action: {action} {category or ''}/{request.file_name or ''}")

        if action == "read":
            return {"content": await self.bank.read(category, request.file_name)}
        if action == "write":
            path = await self.bank.write(category, request.file_name, request.content)
            return {"success": True, "path": path}
        if action == "update":
            timestamp = await self.bank.update(category, request.file_name, request.content)
            return {"success": True, "timestamp": timestamp}
        if action == "archive":
            return {"archived": await self.bank.archive(category)}
        if action == "search":
            return {"results": await self.bank.search(category, request.search_query)}
        if action == "external_search":
            return await self._external_search(request.search_query, ctx)
        if action == "process_multimedia":
            path = await self.bank.import_file(category, request.file_name, request.source_path)
            return {"success": True, "path": path}
        if action == "audit_daily":
            return await self.bank.audit_daily(request.file_name or AUDIT_FILE_NAME)
        raise InvalidArgumentsError(f"Invalid action: {action}")

    async def _external_search(self, query: Optional[str], ctx) -> Dict[str, Any]:
        if not query:
            raise InvalidArgumentsError("Search query is required for external_search operation")
        found = await ctx.call("web_search_enhanced", {
            "query": query,
            "search_type": "general",
            "max_results": 5,
        })
        results = []
        for item in (found or {}).get("results", []):
            link = item.get("link") or item.get("reference") or ""
            results.append(f"{item.get('title', '')} - {link}")
        return {"external_results": results}
