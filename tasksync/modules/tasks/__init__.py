"""Tasks module for task tracking, recurrence and points."""

from typing import TYPE_CHECKING

from tasksync.core.config import constants
from tasksync.core.module import ScheduledJob


if TYPE_CHECKING:
    from tasksync.modules.tasks.store import TaskStore


class TasksModule:
    """Tasks module for employee task tracking.

    Provides:
    - Task CRUD and the pending/in-progress/completed lifecycle
    - Recurring task generation and daily backfill
    - Points, progress and reward tier aggregation
    """

    def __init__(self, store: "TaskStore") -> None:
        self._store = store

    @property
    def name(self) -> str:
        """Module name (unique identifier)."""
        return "tasks"

    @property
    def description(self) -> str:
        """Module description (human-readable)."""
        return "Employee task tracking with recurring tasks, points and reward tiers"

    def get_scheduled_jobs(self) -> list[ScheduledJob]:
        """Return scheduled jobs for this module."""
        return [
            ScheduledJob(
                id="recurring_backfill",
                name="Backfill Recurring Tasks",
                cron=f"{constants.RECURRENCE_BACKFILL_MINUTE} {constants.RECURRENCE_BACKFILL_HOUR} * * *",
                func=self._store.backfill_recurring,
            )
        ]
