"""
Background scheduler for periodic memory maintenance.

Default tasks:
- daily_digest: daily_digest workflow, then the daily memory audit (24h)
- memory_map:   generate_memory_map workflow for the configured target (7d)

Each task is an async callable. The loop wakes every check_interval,
runs whatever is due and logs failures without dying. Intervals count from
registration, so nothing runs at startup unless triggered with run_now().
"""

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .config import SchedulerConfig
from .errors import handle_error
from .mcp_logger import log_info
from .time_utils import utc_now
from .tool_registry import ToolRouter

TaskFn = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledTask:
    name: str
    interval: timedelta
    run: TaskFn


class MaintenanceScheduler:
    DEFAULT_SCHEDULES: Dict[str, timedelta] = {
        "daily_digest": timedelta(days=1),
        "memory_map": timedelta(days=7),
    }

    def __init__(self, check_interval: float = 300.0, jitter: float = 60.0):
        self.check_interval = check_interval
        self.jitter = jitter
        self.tasks: Dict[str, ScheduledTask] = {}
        self._last_run: Dict[str, datetime] = {}
        self._running: Set[str] = set()
        self._stop_event = asyncio.Event()

    def register_task(self, name: str, run: TaskFn, interval: Optional[timedelta] = None) -> None:
        interval = interval or self.DEFAULT_SCHEDULES.get(name, timedelta(days=1))
        self.tasks[name] = ScheduledTask(name=name, interval=interval, run=run)
        self._last_run[name] = utc_now()

    def is_due(self, name: str, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        last = self._last_run.get(name)
        return last is None or now - last >= self.tasks[name].interval

    async def maintenance_loop(self) -> None:
        """Run until stop(). Start with asyncio.create_task(scheduler.maintenance_loop())."""
        if self.jitter > 0:
            await asyncio.sleep(random.uniform(0, self.jitter))

        while not self._stop_event.is_set():
            await self._check_and_run_due()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.check_interval)
                break
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        self._stop_event.set()

    async def _check_and_run_due(self, now: Optional[datetime] = None) -> None:
        now = now or utc_now()
        for name in list(self.tasks):
            if name in self._running or not self.is_due(name, now):
                continue
            await self.run_now(name)

    async def run_now(self, name: str) -> Dict[str, Any]:
        """Run a task immediately. Failures are logged and reported, not raised."""
        if name not in self.tasks:
            return {"error": f"Unknown task: {name}", "available": list(self.tasks)}

        self._running.add(name)
        try:
            log_info(f"Running scheduled task {name}")
            result = await self.tasks[name].run()
            return {"task": name, "ok": True, "result": result}
        except Exception as e:
            handle_error(f"Scheduled task {name} failed", e)
            return {"task": name, "ok": False, "error": str(e)}
        finally:
            self._last_run[name] = utc_now()
            self._running.discard(name)


def build_scheduler(router: ToolRouter, config: SchedulerConfig) -> MaintenanceScheduler:
    """Scheduler with the daily digest/audit and weekly memory map tasks."""
    scheduler = MaintenanceScheduler(check_interval=config.check_interval_seconds, jitter=config.jitter_seconds)

    async def daily_digest_and_audit() -> Dict[str, Any]:
        log_info("Generating daily memory digest and performing daily memory audit...")
        steps = (
            ("digest", "roo_code_workflow", {"workflow_type": "daily_digest"}),
            ("audit", "memory_bank_manager", {"action": "audit_daily"}),
        )
        # The audit still runs when the digest fails
        results: Dict[str, Any] = {}
        for label, tool, args in steps:
            try:
                results[label] = await router.invoke(tool, args)
            except Exception as e:
                handle_error(f"Daily memory {label} failed", e)
                results[label] = {"error": str(e)}
        return results

    async def weekly_memory_map() -> Dict[str, Any]:
        log_info("Generating weekly memory map...")
        return await router.invoke("roo_code_workflow", {
            "workflow_type": "generate_memory_map",
            "target_files": [config.memory_map_target],
        })

    scheduler.register_task("daily_digest", daily_digest_and_audit)
    scheduler.register_task("memory_map", weekly_memory_map)
    return scheduler
