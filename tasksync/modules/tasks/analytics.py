"""Points and progress aggregation over a task set.

Every function here is a pure derivation: nothing is mutated, and user point
totals are always recomputed from the tasks rather than patched incrementally.

Key Concepts:
- Period: the calendar month of ``now``. A completion counts toward the period
  its ``completed_at`` falls in.
- Scope: either ``ALL`` (every task) or a single assignee id.
- Reward tier: the highest threshold at or below the points earned.
"""

import math
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from tasksync.domain.reward import RewardTier
from tasksync.domain.task import Task, TaskCategory, TaskStatus
from tasksync.models.service_models import LeaderboardEntry, PointsStats, TaskStats


ALL = "all"


def percent(part: int, whole: int) -> int:
    """Percentage rounded half up, 0 when whole is 0."""
    if whole <= 0:
        return 0
    return math.floor(100 * part / whole + 0.5)


def in_period(task: Task, now: datetime) -> bool:
    """Whether a completed task was completed in the calendar month of now."""
    if task.completed_at is None:
        return False
    completed = _local(task.completed_at)
    current = _local(now)
    return (completed.year, completed.month) == (current.year, current.month)


def _local(value: datetime) -> datetime:
    """Naive local-time view of a timestamp."""
    return value.astimezone().replace(tzinfo=None) if value.tzinfo is not None else value


def user_tasks(tasks: Iterable[Task], user_id: str) -> list[Task]:
    """Tasks assigned to a user."""
    return [task for task in tasks if task.assignee == user_id]


def tasks_by_category(tasks: Iterable[Task], user_id: str, category: TaskCategory | str) -> list[Task]:
    """A user's tasks on one board; the completed board lists completed tasks of any category."""
    if category == TaskCategory.COMPLETED:
        return [task for task in user_tasks(tasks, user_id) if task.status == TaskStatus.COMPLETED]
    return [task for task in user_tasks(tasks, user_id) if task.category == category]


def task_stats(tasks: Iterable[Task], scope: str = ALL) -> TaskStats:
    """Completed/pending counts and percent complete for all tasks or one assignee."""
    scoped = list(tasks) if scope == ALL else user_tasks(tasks, scope)
    total = len(scoped)
    completed = sum(1 for task in scoped if task.status == TaskStatus.COMPLETED)
    return TaskStats(
        completed=completed,
        pending=total - completed,
        total=total,
        percent_complete=percent(completed, total),
    )


def earned_points(tasks: Iterable[Task], user_id: str, now: datetime) -> int:
    """Points a user earned from completions in the current period."""
    return sum(
        task.points
        for task in tasks
        if task.assignee == user_id and task.status == TaskStatus.COMPLETED and in_period(task, now)
    )


def points_stats(tasks: Iterable[Task], user_id: str, monthly_target: int, now: datetime) -> PointsStats:
    """Points earned this period against the monthly target."""
    earned = earned_points(tasks, user_id, now)
    return PointsStats(earned=earned, target=monthly_target, percent_complete=percent(earned, monthly_target))


def user_monthly_points(tasks: Iterable[Task], now: datetime) -> dict[str, int]:
    """Recompute the points total of every assignee with a completion this period."""
    totals: dict[str, int] = defaultdict(int)
    for task in tasks:
        if task.status == TaskStatus.COMPLETED and in_period(task, now):
            totals[task.assignee] += task.points
    return dict(totals)


def attained_tier(earned: int, tiers: Iterable[RewardTier]) -> RewardTier | None:
    """Highest-threshold tier at or below the points earned.

    With duplicate thresholds the tier listed first in the configuration wins.
    """
    best: RewardTier | None = None
    for tier in tiers:
        if tier.points <= earned and (best is None or tier.points > best.points):
            best = tier
    return best


def reached_tiers(earned: int, tiers: Iterable[RewardTier]) -> list[RewardTier]:
    """All tiers at or below the points earned, ascending by threshold."""
    return sorted((tier for tier in tiers if tier.points <= earned), key=lambda tier: tier.points)


def leaderboard(tasks: Iterable[Task], now: datetime) -> list[LeaderboardEntry]:
    """Rank assignees by points earned this period, then completions, then id."""
    points: dict[str, int] = defaultdict(int)
    completed: dict[str, int] = defaultdict(int)
    for task in tasks:
        if task.status == TaskStatus.COMPLETED and in_period(task, now):
            points[task.assignee] += task.points
            completed[task.assignee] += 1

    entries = [
        LeaderboardEntry(user_id=user_id, points=points[user_id], completed=completed[user_id]) for user_id in points
    ]
    entries.sort(key=lambda entry: (-entry.points, -entry.completed, entry.user_id))
    return entries
