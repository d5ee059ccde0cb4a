"""Pydantic models for creating records."""

from datetime import date

from pydantic import BaseModel, Field, field_validator

from tasksync.domain.task import TaskCategory, TaskPriority, TaskRecurrence, to_calendar_day


class TaskCreate(BaseModel):
    """Pydantic model for creating a task."""

    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    assignee: str = Field(..., description="User ID to assign the task to")
    assigned_by: str | None = Field(default=None, description="User ID creating the assignment")
    due_date: date = Field(..., description="Calendar day the task is due")
    recurrence: TaskRecurrence = Field(..., description="Recurrence cadence")
    points: int = Field(..., ge=0, description="Points awarded on completion")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    category: TaskCategory = Field(default=TaskCategory.CUSTOM, description="Board the task is listed under")

    @field_validator("title", "assignee")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty or whitespace-only values."""
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("due_date", mode="before")
    @classmethod
    def truncate_to_calendar_day(cls, v: object) -> object:
        """Accept timestamps, keeping only the local calendar day."""
        if isinstance(v, str) and v:
            return to_calendar_day(v)
        return v
