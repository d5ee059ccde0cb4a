"""Recurrence generation for completed recurring tasks."""

import logging
import uuid
from datetime import date, datetime

from dateutil.relativedelta import relativedelta

from tasksync.core.errors import InvalidRecurrenceError
from tasksync.domain.task import Task, TaskRecurrence, TaskStatus, to_calendar_day


logger = logging.getLogger(__name__)

# relativedelta clamps month arithmetic to the last valid day (Jan 31 + 1 month = Feb 28/29)
_STEPS: dict[TaskRecurrence, relativedelta] = {
    TaskRecurrence.DAILY: relativedelta(days=1),
    TaskRecurrence.WEEKLY: relativedelta(days=7),
    TaskRecurrence.MONTHLY: relativedelta(months=1),
}


def parse_recurrence(recurrence: TaskRecurrence | str) -> TaskRecurrence:
    try:
        return TaskRecurrence(recurrence)
    except ValueError as e:
        raise InvalidRecurrenceError(f"Unrecognized recurrence: {recurrence!r}") from e


def next_due_date(due_date: date, recurrence: TaskRecurrence | str) -> date:
    """Advance a due date by one recurrence step.

    Raises:
        InvalidRecurrenceError: If recurrence is unrecognized or is "once"
    """
    step = _STEPS.get(parse_recurrence(recurrence))
    if step is None:
        raise InvalidRecurrenceError(f"Recurrence {recurrence!r} does not produce another occurrence")
    return due_date + step


def new_task_id() -> str:
    """Generate a fresh opaque task id."""
    return f"task-{uuid.uuid4().hex}"


def create_next_occurrence(task: Task, now: datetime) -> Task:
    """Build the next pending instance of a completed recurring task.

    The due date advances from the previous due date, not from the completion
    time, so late completions do not shift the schedule.

    Raises:
        InvalidRecurrenceError: If the task's recurrence is unrecognized or "once"
    """
    return _build_instance(task, next_due_date(task.due_date, task.recurrence), now)


def _build_instance(task: Task, due: date, now: datetime) -> Task:
    successor = Task(
        id=new_task_id(),
        title=task.title,
        description=task.description,
        assignee=task.assignee,
        assigned_by=task.assigned_by,
        category=task.category,
        recurrence=task.recurrence,
        due_date=due,
        created_at=now,
        priority=task.priority,
        status=TaskStatus.PENDING,
        points=task.points,
        is_recurring_instance=True,
        parent_task_id=task.parent_task_id or task.id,
        next_occurrence_date=next_due_date(due, task.recurrence),
    )
    logger.info(
        "Generated next occurrence",
        extra={"task_id": task.id, "successor_id": successor.id, "due_date": due.isoformat()},
    )
    return successor


def _has_active_occurrence(tasks: list[Task], template: Task) -> bool:
    """Whether the template or any instance of it is still open."""
    return any(
        task.status != TaskStatus.COMPLETED and (task.id == template.id or task.parent_task_id == template.id)
        for task in tasks
    )


def missing_recurring_instances(tasks: list[Task], now: datetime) -> list[Task]:
    """Produce one new instance for every recurring template with no open occurrence.

    The new instance is due on the first step on or after today, starting from
    the last known occurrence of the template.
    """
    today = to_calendar_day(now)
    templates = [t for t in tasks if t.recurrence != TaskRecurrence.ONCE and not t.is_recurring_instance]
    created: list[Task] = []

    for template in templates:
        if _has_active_occurrence(tasks, template):
            continue

        occurrences = [t for t in tasks if t.id == template.id or t.parent_task_id == template.id]
        last_due = max(t.due_date for t in occurrences)
        due = next_due_date(last_due, template.recurrence)
        while due < today:
            due = next_due_date(due, template.recurrence)

        created.append(_build_instance(template, due, now))

    if created:
        logger.info("Backfilled %d recurring instances", len(created))
    return created
