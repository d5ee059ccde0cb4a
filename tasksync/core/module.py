"""Module definitions for feature modules and their scheduled jobs."""

from collections.abc import Awaitable, Callable
from typing import Protocol

from pydantic import BaseModel


class ScheduledJob(BaseModel):
    """Scheduled job definition."""

    id: str
    name: str
    cron: str
    func: Callable[[], Awaitable[object]]


class Module(Protocol):
    """Interface a feature module exposes to the application."""

    @property
    def name(self) -> str:
        """Module name (unique identifier)."""
        ...

    @property
    def description(self) -> str:
        """Module description (human-readable)."""
        ...

    def get_scheduled_jobs(self) -> list[ScheduledJob]:
        """Return scheduled jobs for this module.

        Returns:
            List of ScheduledJob definitions
        """
        ...
