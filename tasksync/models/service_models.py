"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting derived
values and remote responses into typed objects with validation.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from tasksync.domain.task import Task
from tasksync.domain.user import User


class TaskStats(BaseModel):
    """Completion statistics for a set of tasks."""

    completed: int
    pending: int
    total: int
    percent_complete: int


class PointsStats(BaseModel):
    """Points earned against the monthly target."""

    earned: int
    target: int
    percent_complete: int


class LeaderboardEntry(BaseModel):
    """User entry in the points leaderboard."""

    user_id: str
    points: int
    completed: int


class NotificationLevel(StrEnum):
    """Transient notification level."""

    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


class Notification(BaseModel):
    """Transient notification surfaced to the user."""

    level: NotificationLevel
    message: str
    code: str | None = None
    created_at: datetime


class AuthResult(BaseModel):
    """Outcome of an authentication call; exactly one of user or error is set."""

    user: User | None = None
    error: str | None = None
    already_registered: bool = False


class FunctionResult(BaseModel):
    """Response body of a serverless request handler."""

    success: bool = Field(default=False)
    message: str | None = None
    error: str | None = None


class CompletionResult(BaseModel):
    """A completed task and the next occurrence generated for it, if any."""

    task: Task
    next_occurrence: Task | None = None
