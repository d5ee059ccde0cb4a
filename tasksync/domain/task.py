"""Task domain models and enums."""

from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class TaskStatus(StrEnum):
    """Task lifecycle status."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskCategory(StrEnum):
    """Board a task is listed under."""

    DAILY = "daily"
    CUSTOM = "custom"
    COMPLETED = "completed"


class TaskRecurrence(StrEnum):
    """Cadence at which a completed task regenerates a new instance."""

    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TaskPriority(StrEnum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def to_calendar_day(value: date | datetime | str) -> date:
    """Truncate a date, datetime or ISO string to a calendar day in local time.

    Aware datetimes are converted to the local time zone first; naive ones are
    taken to already be local.
    """
    if isinstance(value, str):
        text = value.replace("Z", "+00:00")
        value = date.fromisoformat(text) if len(text) == 10 else datetime.fromisoformat(text)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    return value


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Opaque task ID")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    assignee: str = Field(..., description="User ID the task is assigned to")
    assigned_by: str | None = Field(default=None, description="User ID that assigned the task")
    category: TaskCategory = Field(default=TaskCategory.CUSTOM, description="Board the task is listed under")
    recurrence: TaskRecurrence = Field(default=TaskRecurrence.ONCE, description="Recurrence cadence")
    due_date: date = Field(..., description="Calendar day the task is due")
    created_at: datetime = Field(..., description="Creation timestamp")
    started_at: datetime | None = Field(default=None, description="When the task was started")
    completed_at: datetime | None = Field(default=None, description="When the task was completed")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Current lifecycle status")
    points: int = Field(default=0, ge=0, description="Points awarded on completion")
    is_recurring_instance: bool = Field(default=False, description="Whether generated from a recurring task")
    parent_task_id: str | None = Field(default=None, description="Root recurring task this instance came from")
    next_occurrence_date: date | None = Field(default=None, description="Due date of the following occurrence")

    @field_validator("due_date", "next_occurrence_date", mode="before")
    @classmethod
    def truncate_to_calendar_day(cls, v: Any) -> Any:
        """Accept timestamps for date fields, keeping only the local calendar day."""
        if v is None or isinstance(v, date | datetime | str):
            return None if v is None else to_calendar_day(v)
        return v

    @field_validator("status", mode="before")
    @classmethod
    def normalize_legacy_status(cls, v: Any) -> Any:
        """Accept the legacy underscore spelling of in-progress."""
        if v == "in_progress":
            return TaskStatus.IN_PROGRESS
        return v

    @model_validator(mode="after")
    def check_completed_at(self) -> "Task":
        """completed_at is set if and only if the task is completed."""
        if (self.status == TaskStatus.COMPLETED) != (self.completed_at is not None):
            raise ValueError("completed_at must be set exactly when status is completed")
        return self
