"""
Background scheduler for the periodic budget status reconciliation.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from budgetguard.core.reconciler import BudgetReconciler

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScheduledTask:
    """Represents an interval task."""

    task_id: str
    name: str
    interval_seconds: int
    callback: Callable[[], Awaitable[Any]]
    enabled: bool = True
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    run_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None


class BackgroundScheduler:
    """Runs interval tasks on the server's event loop."""

    def __init__(self, tick_seconds: float = 1.0):
        """
        Initialize background scheduler.

        Args:
            tick_seconds: How often the loop checks for due tasks
        """
        self.tick_seconds = tick_seconds
        self.tasks: Dict[str, ScheduledTask] = {}
        self.running = False
        self.scheduler_task: Optional[asyncio.Task] = None

    def add_task(
        self,
        task_id: str,
        name: str,
        interval_seconds: int,
        callback: Callable[[], Awaitable[Any]],
        run_immediately: bool = True,
    ) -> ScheduledTask:
        """
        Add an interval task.

        Args:
            task_id: Unique task identifier
            name: Human-readable task name
            interval_seconds: Seconds between runs
            callback: Coroutine function to execute
            run_immediately: Run on the first tick instead of after one interval

        Returns:
            Created ScheduledTask
        """
        task = ScheduledTask(
            task_id=task_id,
            name=name,
            interval_seconds=interval_seconds,
            callback=callback,
        )
        now = _utcnow()
        task.next_run = now if run_immediately else now + timedelta(seconds=interval_seconds)

        self.tasks[task_id] = task
        logger.info(f"Added scheduled task: {name} (next run: {task.next_run})")
        return task

    async def start(self) -> None:
        """Start the background scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.running = True
        self.scheduler_task = asyncio.create_task(self._scheduler_loop())
        logger.info("Background scheduler started")

    async def stop(self) -> None:
        """Stop the background scheduler."""
        if not self.running:
            return

        self.running = False

        if self.scheduler_task and not self.scheduler_task.done():
            self.scheduler_task.cancel()
            try:
                await self.scheduler_task
            except asyncio.CancelledError:
                pass

        logger.info("Background scheduler stopped")

    async def _scheduler_loop(self) -> None:
        while self.running:
            now = _utcnow()
            ready_tasks = [
                task
                for task in self.tasks.values()
                if task.enabled and task.next_run and task.next_run <= now
            ]

            for task in ready_tasks:
                await self._execute_task(task)

            await asyncio.sleep(self.tick_seconds)

    async def _execute_task(self, task: ScheduledTask) -> None:
        """Execute a scheduled task; failures are counted and logged."""
        task.last_run = _utcnow()
        try:
            await task.callback()
            task.run_count += 1
            task.last_error = None
            logger.debug(f"Task {task.name} completed successfully")
        except Exception as e:
            task.error_count += 1
            task.last_error = str(e)
            logger.error(f"Task {task.name} failed: {e}")
        finally:
            task.next_run = task.last_run + timedelta(seconds=task.interval_seconds)

    def get_task_status(self) -> Dict[str, Any]:
        """Get status of all scheduled tasks."""
        return {
            "scheduler_running": self.running,
            "tasks": [
                {
                    "task_id": task.task_id,
                    "name": task.name,
                    "enabled": task.enabled,
                    "last_run": task.last_run.isoformat() if task.last_run else None,
                    "next_run": task.next_run.isoformat() if task.next_run else None,
                    "run_count": task.run_count,
                    "error_count": task.error_count,
                    "last_error": task.last_error,
                }
                for task in self.tasks.values()
            ],
        }


def reconcile_scheduler(
    reconciler: BudgetReconciler, interval_seconds: int, tick_seconds: float = 1.0
) -> BackgroundScheduler:
    """Build a scheduler that refreshes every budget status on an interval."""
    scheduler = BackgroundScheduler(tick_seconds=tick_seconds)
    scheduler.add_task(
        task_id="budget_status",
        name="Reconcile ProjectBudget Status",
        interval_seconds=interval_seconds,
        callback=reconciler.reconcile_all,
    )
    return scheduler
