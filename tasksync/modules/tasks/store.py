"""Task store: the canonical task collection and reward configuration.

The store exclusively owns the in-memory tasks, reward tiers, monthly target
and per-user points. Every mutation rewrites the full persisted state through
the injected storage port. Mutations and refreshes are serialized by one
asyncio lock so a refresh never interleaves with a half-applied mutation.
"""

import asyncio
import json
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from tasksync.core.config import constants
from tasksync.core.errors import ErrorCode, NotFoundError, PersistenceError, ValidationError
from tasksync.core.logging import span
from tasksync.core.storage import StoragePort
from tasksync.domain.create_models import TaskCreate
from tasksync.domain.reward import RewardTier
from tasksync.domain.task import Task, TaskCategory, TaskRecurrence, TaskStatus
from tasksync.domain.update_models import TaskUpdate
from tasksync.models.service_models import CompletionResult, LeaderboardEntry, PointsStats, TaskStats
from tasksync.modules.tasks import analytics, recurrence
from tasksync.modules.tasks.defaults import DEFAULT_MONTHLY_TARGET, DEFAULT_REWARD_TIERS, DEFAULT_TASKS
from tasksync.services.notification_service import Notifier


logger = logging.getLogger(__name__)

_REQUIRED_CREATE_FIELDS = ("title", "assignee", "due_date", "recurrence", "points")


def _format_validation_error(error: PydanticValidationError) -> str:
    return "; ".join(f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors())


def _validate_create(spec: TaskCreate | Mapping[str, Any]) -> TaskCreate:
    """Validate a task spec, failing on the first malformed field.

    Raises:
        InvalidRecurrenceError: If recurrence is not a known cadence
        ValidationError: If a required field is missing or a value is malformed
    """
    if isinstance(spec, TaskCreate):
        return spec

    data = dict(spec)
    missing = [name for name in _REQUIRED_CREATE_FIELDS if data.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

    recurrence.parse_recurrence(data["recurrence"])

    try:
        return TaskCreate.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid task: {_format_validation_error(e)}") from e


class TaskStore:
    """Holds tasks and reward configuration, persisting after every mutation."""

    def __init__(
        self,
        storage: StoragePort,
        *,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = datetime.now,
        seed_tasks: Iterable[Task] = DEFAULT_TASKS,
        default_reward_tiers: Iterable[RewardTier] = DEFAULT_REWARD_TIERS,
        default_monthly_target: int = DEFAULT_MONTHLY_TARGET,
    ) -> None:
        self._storage = storage
        self._notifier = notifier or Notifier()
        self._clock = clock
        self._seed_tasks = list(seed_tasks)
        self._default_reward_tiers = list(default_reward_tiers)
        self._default_monthly_target = default_monthly_target
        self._lock = asyncio.Lock()

        self._tasks: list[Task] = []
        self._reward_tiers: list[RewardTier] = list(self._default_reward_tiers)
        self._monthly_target = default_monthly_target
        self._user_points: dict[str, int] = {}
        self._loaded = False

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def reward_tiers(self) -> list[RewardTier]:
        return list(self._reward_tiers)

    @property
    def monthly_target(self) -> int:
        return self._monthly_target

    @property
    def user_points(self) -> dict[str, int]:
        return dict(self._user_points)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    # Loading and persistence

    async def load(self) -> None:
        """Read persisted state, seeding and persisting defaults on first run.

        Raises:
            PersistenceError: If storage cannot be read
        """
        with span("task_store.load"):
            async with self._lock:
                await self._read_all(bootstrap=True)
                self._loaded = True
            logger.info(
                "Task store loaded",
                extra={"task_count": len(self._tasks), "tier_count": len(self._reward_tiers)},
            )

    async def refresh(self) -> None:
        """Re-read persisted state, replacing the in-memory copy.

        Persisted state is authoritative: a local change that has not reached
        storage yet is overwritten.
        """
        with span("task_store.refresh"):
            async with self._lock:
                await self._read_all(bootstrap=False)
            logger.debug("Task store refreshed", extra={"task_count": len(self._tasks)})

    async def refresh_points(self) -> None:
        """Re-read the persisted per-user points map."""
        with span("task_store.refresh_points"):
            async with self._lock:
                stored = await self._storage.get(constants.STORAGE_KEY_USER_POINTS)
                self._user_points = {str(k): int(v) for k, v in json.loads(stored).items()} if stored else {}

    async def _read_all(self, *, bootstrap: bool) -> None:
        raw_tasks = await self._storage.get(constants.STORAGE_KEY_TASKS)
        if raw_tasks is None:
            self._tasks = list(self._seed_tasks) if bootstrap else []
            if bootstrap:
                logger.info("No persisted tasks, seeding defaults", extra={"seed_count": len(self._tasks)})
                await self._persist(constants.STORAGE_KEY_TASKS, self._dump_tasks())
        else:
            self._tasks = [Task.model_validate(item) for item in json.loads(raw_tasks)]

        raw_tiers = await self._storage.get(constants.STORAGE_KEY_REWARD_TIERS)
        if raw_tiers is None:
            self._reward_tiers = list(self._default_reward_tiers)
        else:
            self._reward_tiers = [RewardTier.model_validate(item) for item in json.loads(raw_tiers)]

        raw_target = await self._storage.get(constants.STORAGE_KEY_MONTHLY_TARGET)
        self._monthly_target = self._default_monthly_target if raw_target is None else int(json.loads(raw_target))

        raw_points = await self._storage.get(constants.STORAGE_KEY_USER_POINTS)
        stored_points = {str(k): int(v) for k, v in json.loads(raw_points).items()} if raw_points else {}
        self._user_points = analytics.user_monthly_points(self._tasks, self._clock())
        if stored_points and stored_points != self._user_points:
            logger.info("Persisted user points differ from tasks, using recomputed totals")

    def _dump_tasks(self) -> str:
        return json.dumps([task.model_dump(mode="json") for task in self._tasks])

    async def _persist(self, key: str, value: str) -> bool:
        """Write one entry, logging and surfacing failures without raising."""
        try:
            await self._storage.set(key, value)
        except PersistenceError as e:
            logger.error("Failed to persist %s", key, extra={"key": key, "error": str(e)})
            self._notifier.exception(e)
            return False
        return True

    async def _persist_tasks_and_points(self) -> bool:
        self._user_points = analytics.user_monthly_points(self._tasks, self._clock())
        tasks_saved = await self._persist(constants.STORAGE_KEY_TASKS, self._dump_tasks())
        points_saved = await self._persist(constants.STORAGE_KEY_USER_POINTS, json.dumps(self._user_points))
        return tasks_saved and points_saved

    async def save(self, tasks: Iterable[Task] | None = None) -> bool:
        """Persist the full task collection, optionally replacing it first.

        Returns:
            False if the write failed; the in-memory state is kept either way
        """
        with span("task_store.save"):
            async with self._lock:
                if tasks is not None:
                    self._tasks = list(tasks)
                return await self._persist_tasks_and_points()

    # Task mutations

    def _find(self, task_id: str) -> int:
        for index, task in enumerate(self._tasks):
            if task.id == task_id:
                return index
        raise NotFoundError(f"Task not found: {task_id}", code=ErrorCode.ERR_TASK_NOT_FOUND)

    async def create_task(self, spec: TaskCreate | Mapping[str, Any]) -> Task:
        """Validate a task spec and add a new pending task.

        Raises:
            InvalidRecurrenceError: If recurrence is not a known cadence
            ValidationError: If a required field is missing or malformed
        """
        with span("task_store.create_task"):
            create = _validate_create(spec)
            now = self._clock()
            task = Task(
                id=recurrence.new_task_id(),
                created_at=now,
                status=TaskStatus.PENDING,
                next_occurrence_date=(
                    recurrence.next_due_date(create.due_date, create.recurrence)
                    if create.recurrence != TaskRecurrence.ONCE
                    else None
                ),
                **create.model_dump(),
            )

            async with self._lock:
                self._tasks.append(task)
                await self._persist_tasks_and_points()

            logger.info("Created task", extra={"task_id": task.id, "assignee": task.assignee})
            self._notifier.success("Task created successfully")
            return task

    async def update_task(self, task_id: str, changes: TaskUpdate | Mapping[str, Any]) -> Task:
        """Apply edits to a task. Status only changes through start/complete.

        Raises:
            NotFoundError: If the task does not exist
            ValidationError: If an edit is malformed, or points change on a completed task
        """
        with span("task_store.update_task"):
            if not isinstance(changes, TaskUpdate):
                if "recurrence" in changes and changes["recurrence"] is not None:
                    recurrence.parse_recurrence(changes["recurrence"])
                try:
                    changes = TaskUpdate.model_validate(dict(changes))
                except PydanticValidationError as e:
                    raise ValidationError(f"Invalid task update: {_format_validation_error(e)}") from e

            edits = changes.model_dump(exclude_none=True)

            async with self._lock:
                index = self._find(task_id)
                current = self._tasks[index]
                if (
                    current.status == TaskStatus.COMPLETED
                    and "points" in edits
                    and edits["points"] != current.points
                ):
                    raise ValidationError("Points cannot change after a task is completed")

                merged = {**current.model_dump(), **edits}
                if "due_date" in edits or "recurrence" in edits:
                    merged["next_occurrence_date"] = (
                        recurrence.next_due_date(merged["due_date"], merged["recurrence"])
                        if merged["recurrence"] != TaskRecurrence.ONCE
                        else None
                    )

                try:
                    updated = Task.model_validate(merged)
                except PydanticValidationError as e:
                    raise ValidationError(f"Invalid task update: {_format_validation_error(e)}") from e
                self._tasks[index] = updated
                await self._persist_tasks_and_points()

            logger.info("Updated task", extra={"task_id": task_id, "fields": sorted(edits)})
            return updated

    async def start_task(self, task_id: str) -> Task:
        """Move a pending task to in-progress.

        Raises:
            NotFoundError: If the task does not exist
            ValidationError: If the task is not pending
        """
        with span("task_store.start_task"):
            async with self._lock:
                index = self._find(task_id)
                current = self._tasks[index]
                if current.status != TaskStatus.PENDING:
                    raise ValidationError(f"Only pending tasks can be started (task is {current.status})")

                started = current.model_copy(update={"status": TaskStatus.IN_PROGRESS, "started_at": self._clock()})
                self._tasks[index] = started
                await self._persist_tasks_and_points()

            logger.info("Started task", extra={"task_id": task_id})
            self._notifier.info("Task started")
            return started

    async def complete_task(self, task_id: str) -> CompletionResult:
        """Complete a task and, for recurring tasks, insert the next occurrence.

        Completing an already-completed task fails without generating a second
        successor.

        Raises:
            NotFoundError: If the task does not exist
            ValidationError: If the task is already completed
            InvalidRecurrenceError: If the task's recurrence cannot be advanced
        """
        with span("task_store.complete_task"):
            async with self._lock:
                index = self._find(task_id)
                current = self._tasks[index]
                if current.status == TaskStatus.COMPLETED:
                    raise ValidationError(
                        f"Task already completed: {task_id}", code=ErrorCode.ERR_TASK_ALREADY_COMPLETED
                    )

                now = self._clock()
                before = analytics.points_stats(self._tasks, current.assignee, self._monthly_target, now)

                completed = current.model_copy(update={"status": TaskStatus.COMPLETED, "completed_at": now})
                self._tasks[index] = completed
                await self._persist_tasks_and_points()

                successor = None
                if completed.recurrence != TaskRecurrence.ONCE:
                    successor = recurrence.create_next_occurrence(completed, now)
                    self._tasks.append(successor)
                    await self._persist_tasks_and_points()

                after = analytics.points_stats(self._tasks, current.assignee, self._monthly_target, now)

            logger.info(
                "Completed task",
                extra={
                    "task_id": task_id,
                    "assignee": completed.assignee,
                    "points": completed.points,
                    "successor_id": successor.id if successor else None,
                },
            )
            self._notifier.success(f"Task completed! +{completed.points} points")
            self._notifier.goal_progress(before.percent_complete, after.percent_complete)
            return CompletionResult(task=completed, next_occurrence=successor)

    async def delete_task(self, task_id: str) -> None:
        """Remove a task; it no longer counts toward any aggregation.

        Raises:
            NotFoundError: If the task does not exist
        """
        with span("task_store.delete_task"):
            async with self._lock:
                index = self._find(task_id)
                del self._tasks[index]
                await self._persist_tasks_and_points()

            logger.info("Deleted task", extra={"task_id": task_id})
            self._notifier.success("Task deleted")

    async def delete_user_tasks(self, user_id: str) -> int:
        """Remove every task assigned to a user and return how many were removed."""
        with span("task_store.delete_user_tasks"):
            async with self._lock:
                remaining = [task for task in self._tasks if task.assignee != user_id]
                removed = len(self._tasks) - len(remaining)
                if removed:
                    self._tasks = remaining
                    await self._persist_tasks_and_points()

            logger.info("Deleted user tasks", extra={"user_id": user_id, "removed": removed})
            return removed

    async def backfill_recurring(self) -> list[Task]:
        """Insert an open instance for every recurring task that has none."""
        with span("task_store.backfill_recurring"):
            async with self._lock:
                created = recurrence.missing_recurring_instances(self._tasks, self._clock())
                if created:
                    self._tasks.extend(created)
                    await self._persist_tasks_and_points()
            return created

    # Configuration

    async def update_reward_tiers(self, tiers: Iterable[RewardTier | Mapping[str, Any]]) -> list[RewardTier]:
        """Replace the reward tiers wholesale, kept in ascending threshold order.

        Raises:
            ValidationError: If a tier is malformed
        """
        with span("task_store.update_reward_tiers"):
            try:
                parsed = [tier if isinstance(tier, RewardTier) else RewardTier.model_validate(tier) for tier in tiers]
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid reward tier: {_format_validation_error(e)}") from e
            # sorted() is stable, so duplicate thresholds keep their configured order
            parsed.sort(key=lambda tier: tier.points)

            async with self._lock:
                self._reward_tiers = parsed
                await self._persist(
                    constants.STORAGE_KEY_REWARD_TIERS,
                    json.dumps([tier.model_dump(mode="json") for tier in parsed]),
                )

            logger.info("Updated reward tiers", extra={"tier_count": len(parsed)})
            self._notifier.success("Reward tiers updated")
            return list(parsed)

    async def update_monthly_target(self, target: int) -> int:
        """Replace the monthly points target.

        Raises:
            ValidationError: If target is not a positive integer
        """
        with span("task_store.update_monthly_target"):
            if isinstance(target, bool) or not isinstance(target, int) or target <= 0:
                raise ValidationError(f"Monthly target must be a positive integer, got {target!r}")

            async with self._lock:
                self._monthly_target = target
                await self._persist(constants.STORAGE_KEY_MONTHLY_TARGET, json.dumps(target))

            logger.info("Updated monthly target", extra={"target": target})
            self._notifier.success("Monthly target updated")
            return target

    async def reset(self) -> None:
        """Clear all tasks and points and restore the default reward configuration."""
        with span("task_store.reset"):
            async with self._lock:
                self._tasks = []
                self._reward_tiers = list(self._default_reward_tiers)
                self._monthly_target = self._default_monthly_target
                await self._persist_tasks_and_points()
                await self._persist(
                    constants.STORAGE_KEY_REWARD_TIERS,
                    json.dumps([tier.model_dump(mode="json") for tier in self._reward_tiers]),
                )
                await self._persist(constants.STORAGE_KEY_MONTHLY_TARGET, json.dumps(self._monthly_target))

            logger.warning("Task store reset to defaults")
            self._notifier.info("All task data has been reset")

    # Queries

    def get_task(self, task_id: str) -> Task:
        """Return a task by id.

        Raises:
            NotFoundError: If the task does not exist
        """
        return self._tasks[self._find(task_id)]

    def user_tasks(self, user_id: str) -> list[Task]:
        return analytics.user_tasks(self._tasks, user_id)

    def tasks_by_category(self, user_id: str, category: TaskCategory | str) -> list[Task]:
        return analytics.tasks_by_category(self._tasks, user_id, category)

    def task_stats(self, scope: str = analytics.ALL) -> TaskStats:
        return analytics.task_stats(self._tasks, scope)

    def points_stats(self, user_id: str) -> PointsStats:
        return analytics.points_stats(self._tasks, user_id, self._monthly_target, self._clock())

    def attained_tier(self, user_id: str) -> RewardTier | None:
        earned = analytics.earned_points(self._tasks, user_id, self._clock())
        return analytics.attained_tier(earned, self._reward_tiers)

    def reached_tiers(self, user_id: str) -> list[RewardTier]:
        earned = analytics.earned_points(self._tasks, user_id, self._clock())
        return analytics.reached_tiers(earned, self._reward_tiers)

    def leaderboard(self) -> list[LeaderboardEntry]:
        return analytics.leaderboard(self._tasks, self._clock())
