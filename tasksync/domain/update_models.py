"""Update models for task edits."""

from datetime import date

from pydantic import BaseModel, Field, field_validator

from tasksync.domain.task import TaskCategory, TaskPriority, TaskRecurrence


class TaskUpdate(BaseModel):
    """Editable task fields; status only changes through start/complete."""

    title: str | None = None
    description: str | None = None
    assignee: str | None = None
    due_date: date | None = None
    priority: TaskPriority | None = None
    category: TaskCategory | None = None
    recurrence: TaskRecurrence | None = None
    points: int | None = Field(default=None, ge=0)

    @field_validator("title", "assignee")
    @classmethod
    def validate_not_blank(cls, v: str | None) -> str | None:
        """Reject empty or whitespace-only values; None leaves the field unchanged."""
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v
