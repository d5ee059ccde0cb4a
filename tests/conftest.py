"""Pytest configuration and shared fixtures."""

import itertools
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

import pytest

from tasksync.domain.reward import RewardTier
from tasksync.domain.task import Task, TaskStatus


# Fixed observation time used wherever "now" matters (local, naive)
NOW = datetime(2024, 3, 10, 9, 30)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Clock returning the fixed observation time."""
    return lambda: NOW


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """Factory for tasks with sensible defaults; completed tasks get completed_at = NOW."""
    ids = itertools.count(1)

    def _make(**overrides: Any) -> Task:
        data: dict[str, Any] = {
            "id": f"task-{next(ids)}",
            "title": "Restock shelves",
            "description": "Front aisle",
            "assignee": "user-1",
            "assigned_by": "admin-1",
            "due_date": date(2024, 3, 10),
            "created_at": datetime(2024, 3, 1, 8, 0),
            "points": 10,
        }
        data.update(overrides)
        if data.get("status") == TaskStatus.COMPLETED and "completed_at" not in overrides:
            data["completed_at"] = NOW
        return Task(**data)

    return _make


@pytest.fixture
def tiers() -> list[RewardTier]:
    return [
        RewardTier(id="a", name="A", points=300, reward="A"),
        RewardTier(id="b", name="B", points=500, reward="B"),
        RewardTier(id="c", name="C", points=1000, reward="C"),
    ]
