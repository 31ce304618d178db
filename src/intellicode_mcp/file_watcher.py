"""
Source file change monitoring.

Polls the watched tree (default src/, *.ts and *.md) and runs a
roo_code_workflow quick_check for every file whose modification time or
size changed since the previous poll. New files are picked up silently and
reported from their first change on; dotfiles and dot-directories are never
watched.

Like the maintenance scheduler, the loop logs failures and keeps going.
"""

import asyncio
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from .config import WatcherConfig
from .errors import handle_error
from .mcp_logger import log_info
from .tool_registry import ToolRouter

ChangeFn = Callable[[str], Awaitable[Any]]
Signature = Tuple[int, int]  # (mtime_ns, size)


class FileWatcher:
    def __init__(
        self,
        root,
        on_change: ChangeFn,
        patterns: Iterable[str] = ("*.ts", "*.md"),
        poll_interval: float = 2.0,
    ):
        self.root = Path(root)
        self.on_change = on_change
        self.patterns = tuple(patterns)
        self.poll_interval = poll_interval
        self._known: Optional[Dict[str, Signature]] = None
        self._stop_event = asyncio.Event()

    def _matches(self, path: Path) -> bool:
        rel = path.relative_to(self.root)
        if any(part.startswith(".") for part in rel.parts):
            return False
        return any(fnmatch(path.name, pattern) for pattern in self.patterns)

    def snapshot(self) -> Dict[str, Signature]:
        """Current signature of every watched file. A missing root is an empty tree."""
        if not self.root.is_dir():
            return {}
        found: Dict[str, Signature] = {}
        for path in self.root.rglob("*"):
            try:
                if not path.is_file() or not self._matches(path):
                    continue
                stat = path.stat()
            except OSError:
                # Removed between listing and stat
                continue
            found[str(path)] = (stat.st_mtime_ns, stat.st_size)
        return found

    async def prime(self) -> None:
        self._known = await asyncio.to_thread(self.snapshot)
        log_info(f"File change monitoring initialized for {', '.join(self.patterns)} in {self.root}/ "
                 f"({len(self._known)} files)")

    async def poll_once(self) -> List[Dict[str, Any]]:
        """Compare against the last snapshot and handle every changed file."""
        if self._known is None:
            await self.prime()
            return []

        current = await asyncio.to_thread(self.snapshot)
        changed = sorted(
            path for path, signature in current.items()
            if path in self._known and self._known[path] != signature
        )
        self._known = current

        results = []
        for path in changed:
            results.append(await self._handle(path))
        return results

    async def _handle(self, path: str) -> Dict[str, Any]:
        log_info(f"File {path} has been changed. Triggering roo_code_workflow quick check.")
        try:
            result = await self.on_change(path)
            return {"file": path, "ok": True, "result": result}
        except Exception as e:
            handle_error(f"Quick check for {path} failed", e)
            return {"file": path, "ok": False, "error": str(e)}

    async def watch_loop(self) -> None:
        """Poll until stop(). Start with asyncio.create_task(watcher.watch_loop())."""
        await self.prime()
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
                break
            except asyncio.TimeoutError:
                pass
            await self.poll_once()

    def stop(self) -> None:
        self._stop_event.set()


def build_file_watcher(router: ToolRouter, config: WatcherConfig) -> FileWatcher:
    """Watcher that quick-checks each changed file through the router."""

    async def quick_check(path: str) -> Dict[str, Any]:
        return await router.invoke("roo_code_workflow", {
            "workflow_type": "quick_check",
            "target_files": [path],
        })

    return FileWatcher(
        config.root,
        quick_check,
        patterns=config.patterns,
        poll_interval=config.poll_interval_seconds,
    )
