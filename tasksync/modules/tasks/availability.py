"""Pure availability functions for tasks.

All comparisons are made on calendar days in the observer's local time zone,
so two timestamps on the same day always classify a task the same way.
"""

from datetime import datetime
from enum import StrEnum

from tasksync.domain.task import Task, TaskStatus, to_calendar_day


class AvailabilityStatus(StrEnum):
    """Where a task sits relative to today."""

    AVAILABLE = "available"
    UPCOMING = "upcoming"
    OVERDUE = "overdue"


def days_until_due(task: Task, now: datetime) -> int:
    """Signed number of calendar days until the task is due (0 = today, negative = overdue)."""
    return (to_calendar_day(task.due_date) - to_calendar_day(now)).days


def is_available(task: Task, now: datetime) -> bool:
    """A task is available once its due day has arrived; completed tasks always are."""
    if task.status == TaskStatus.COMPLETED:
        return True
    return days_until_due(task, now) <= 0


def is_overdue(task: Task, now: datetime) -> bool:
    """A non-completed task is overdue once its due day has passed."""
    if task.status == TaskStatus.COMPLETED:
        return False
    return days_until_due(task, now) < 0


def availability_status(task: Task, now: datetime) -> AvailabilityStatus:
    """Classify a task as exactly one of available, upcoming or overdue."""
    if task.status == TaskStatus.COMPLETED:
        return AvailabilityStatus.AVAILABLE

    days = days_until_due(task, now)
    if days < 0:
        return AvailabilityStatus.OVERDUE
    if days > 0:
        return AvailabilityStatus.UPCOMING
    return AvailabilityStatus.AVAILABLE
