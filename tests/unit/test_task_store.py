"""Unit tests for the task store."""

import json
from datetime import date

import pytest

from tasksync.core.config import constants
from tasksync.core.errors import ErrorCode, InvalidRecurrenceError, NotFoundError, ValidationError
from tasksync.domain.create_models import TaskCreate
from tasksync.domain.reward import RewardTier
from tasksync.domain.task import TaskRecurrence, TaskStatus
from tasksync.models.service_models import NotificationLevel
from tasksync.modules.tasks.defaults import DEFAULT_MONTHLY_TARGET, DEFAULT_REWARD_TIERS
from tasksync.modules.tasks.store import TaskStore


def _spec(**overrides):
    spec = {
        "title": "Count register",
        "assignee": "user-1",
        "assigned_by": "admin-1",
        "due_date": "2024-03-10",
        "recurrence": "once",
        "points": 20,
    }
    spec.update(overrides)
    return spec


def _stored_tasks(storage) -> list[dict]:
    return json.loads(storage.snapshot()[constants.STORAGE_KEY_TASKS])


@pytest.mark.unit
class TestLoad:
    """Tests for first-run bootstrap and reload."""

    async def test_first_run_persists_seed(self, storage, clock, make_task):
        seed = [make_task(id="seed-1"), make_task(id="seed-2")]
        store = TaskStore(storage, clock=clock, seed_tasks=seed)

        await store.load()

        assert [task.id for task in store.tasks] == ["seed-1", "seed-2"]
        assert [task["id"] for task in _stored_tasks(storage)] == ["seed-1", "seed-2"]
        assert store.reward_tiers == list(DEFAULT_REWARD_TIERS)
        assert store.monthly_target == DEFAULT_MONTHLY_TARGET

    async def test_seed_not_regenerated_once_present(self, storage, clock, make_task):
        await storage.set(constants.STORAGE_KEY_TASKS, "[]")
        store = TaskStore(storage, clock=clock, seed_tasks=[make_task(id="seed-1")])

        await store.load()

        assert store.tasks == []

    async def test_reads_persisted_configuration(self, storage, clock):
        await storage.set(constants.STORAGE_KEY_REWARD_TIERS, json.dumps([{"id": "t", "points": 5, "reward": "Pin"}]))
        await storage.set(constants.STORAGE_KEY_MONTHLY_TARGET, "750")
        store = TaskStore(storage, clock=clock)

        await store.load()

        assert store.monthly_target == 750
        assert [tier.reward for tier in store.reward_tiers] == ["Pin"]

    async def test_reload_round_trips_tasks(self, store, storage, clock):
        created = await store.create_task(_spec(recurrence="weekly"))
        await store.complete_task(created.id)

        reloaded = TaskStore(storage, clock=clock)
        await reloaded.load()

        assert reloaded.tasks == store.tasks
        assert reloaded.user_points == {"user-1": 20}

    async def test_legacy_status_spelling_is_accepted(self, storage, clock, make_task):
        task = make_task(status=TaskStatus.IN_PROGRESS).model_dump(mode="json")
        task["status"] = "in_progress"
        await storage.set(constants.STORAGE_KEY_TASKS, json.dumps([task]))
        store = TaskStore(storage, clock=clock)

        await store.load()

        assert store.tasks[0].status == TaskStatus.IN_PROGRESS


@pytest.mark.unit
class TestCreateTask:
    """Tests for create_task validation."""

    async def test_creates_pending_task(self, store, now):
        task = await store.create_task(_spec())

        assert task.status == TaskStatus.PENDING
        assert task.created_at == now
        assert task.completed_at is None
        assert task.due_date == date(2024, 3, 10)
        assert task.id
        assert store.get_task(task.id) == task

    async def test_persists_after_create(self, store, storage):
        task = await store.create_task(_spec())

        assert [row["id"] for row in _stored_tasks(storage)] == [task.id]

    async def test_accepts_create_model(self, store):
        spec = TaskCreate(
            title="Lock up", assignee="user-2", due_date=date(2024, 3, 11), recurrence=TaskRecurrence.DAILY, points=5
        )

        task = await store.create_task(spec)

        assert task.next_occurrence_date == date(2024, 3, 12)

    @pytest.mark.parametrize("missing", ["title", "assignee", "due_date", "recurrence", "points"])
    async def test_missing_required_field(self, store, missing):
        spec = _spec()
        del spec[missing]

        with pytest.raises(ValidationError, match=missing):
            await store.create_task(spec)

        assert store.tasks == []

    async def test_negative_points_rejected(self, store):
        with pytest.raises(ValidationError, match="points"):
            await store.create_task(_spec(points=-1))

    async def test_blank_title_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.create_task(_spec(title="   "))

    async def test_unknown_recurrence_rejected(self, store):
        with pytest.raises(InvalidRecurrenceError):
            await store.create_task(_spec(recurrence="hourly"))

        assert store.tasks == []

    async def test_zero_points_allowed(self, store):
        task = await store.create_task(_spec(points=0))

        assert task.points == 0


@pytest.mark.unit
class TestCompleteTask:
    """Tests for completion and recurrence on completion."""

    async def test_once_task_completes_without_successor(self, store, now):
        task = await store.create_task(_spec())

        result = await store.complete_task(task.id)

        assert result.task.status == TaskStatus.COMPLETED
        assert result.task.completed_at == now
        assert result.next_occurrence is None
        assert len(store.tasks) == 1

    async def test_daily_task_generates_successor(self, store, storage):
        task = await store.create_task(_spec(recurrence="daily", points=15))

        result = await store.complete_task(task.id)

        successor = result.next_occurrence
        assert successor is not None
        assert successor.due_date == date(2024, 3, 11)
        assert successor.status == TaskStatus.PENDING
        assert (successor.assignee, successor.points, successor.title) == (task.assignee, 15, task.title)
        assert {row["id"] for row in _stored_tasks(storage)} == {task.id, successor.id}

    async def test_completing_twice_creates_one_successor(self, store):
        task = await store.create_task(_spec(recurrence="weekly"))
        await store.complete_task(task.id)

        with pytest.raises(ValidationError) as exc_info:
            await store.complete_task(task.id)

        assert exc_info.value.code == ErrorCode.ERR_TASK_ALREADY_COMPLETED
        assert len(store.tasks) == 2

    async def test_unknown_task(self, store):
        with pytest.raises(NotFoundError):
            await store.complete_task("missing")

    async def test_in_progress_task_can_be_completed(self, store):
        task = await store.create_task(_spec())
        await store.start_task(task.id)

        result = await store.complete_task(task.id)

        assert result.task.status == TaskStatus.COMPLETED

    async def test_user_points_recomputed_and_persisted(self, store, storage):
        first = await store.create_task(_spec(points=100))
        second = await store.create_task(_spec(points=40, assignee="user-2"))

        await store.complete_task(first.id)
        await store.complete_task(second.id)

        assert store.user_points == {"user-1": 100, "user-2": 40}
        assert json.loads(storage.snapshot()[constants.STORAGE_KEY_USER_POINTS]) == {"user-1": 100, "user-2": 40}

    async def test_goal_milestones_notified_once(self, store, notifier):
        big = await store.create_task(_spec(points=260))
        small = await store.create_task(_spec(points=10))

        await store.complete_task(big.id)
        await store.complete_task(small.id)

        milestones = [n.message for n in notifier.items if "monthly points goal" in n.message]
        assert len(milestones) == 1
        assert "50%" in milestones[0]

    async def test_crossing_several_milestones_at_once(self, store, notifier):
        task = await store.create_task(_spec(points=500))

        await store.complete_task(task.id)

        milestones = [n.message for n in notifier.items if "monthly points goal" in n.message]
        assert len(milestones) == 3


@pytest.mark.unit
class TestOtherMutations:
    """Tests for start, update and delete."""

    async def test_start_task(self, store, now):
        task = await store.create_task(_spec())

        started = await store.start_task(task.id)

        assert started.status == TaskStatus.IN_PROGRESS
        assert started.started_at == now

    async def test_start_requires_pending(self, store):
        task = await store.create_task(_spec())
        await store.start_task(task.id)

        with pytest.raises(ValidationError):
            await store.start_task(task.id)

    async def test_update_task_fields(self, store):
        task = await store.create_task(_spec(recurrence="daily"))

        updated = await store.update_task(task.id, {"title": "Count safe", "due_date": "2024-03-15"})

        assert updated.title == "Count safe"
        assert updated.due_date == date(2024, 3, 15)
        assert updated.next_occurrence_date == date(2024, 3, 16)
        assert store.get_task(task.id).title == "Count safe"

    async def test_update_rejects_unknown_recurrence(self, store):
        task = await store.create_task(_spec())

        with pytest.raises(InvalidRecurrenceError):
            await store.update_task(task.id, {"recurrence": "yearly"})

    async def test_points_frozen_after_completion(self, store):
        task = await store.create_task(_spec(points=30))
        await store.complete_task(task.id)

        with pytest.raises(ValidationError, match="Points"):
            await store.update_task(task.id, {"points": 300})

        assert store.get_task(task.id).points == 30

    @pytest.mark.parametrize("changes", [{"title": "   "}, {"assignee": ""}, {"title": "   ", "assignee": ""}])
    async def test_update_rejects_blank_title_or_assignee(self, store, storage, changes):
        task = await store.create_task(_spec())

        with pytest.raises(ValidationError, match="must not be empty"):
            await store.update_task(task.id, changes)

        assert store.get_task(task.id).title == "Count register"
        assert store.get_task(task.id).assignee == "user-1"
        assert _stored_tasks(storage)[0]["title"] == "Count register"

    async def test_update_strips_title(self, store):
        task = await store.create_task(_spec())

        updated = await store.update_task(task.id, {"title": "  Count safe  "})

        assert updated.title == "Count safe"

    async def test_update_unknown_task(self, store):
        with pytest.raises(NotFoundError):
            await store.update_task("missing", {"title": "x"})

    async def test_delete_removes_from_aggregation(self, store, storage):
        task = await store.create_task(_spec(points=100))
        await store.complete_task(task.id)

        await store.delete_task(task.id)

        assert store.tasks == []
        assert store.user_points == {}
        assert store.points_stats("user-1").earned == 0
        assert _stored_tasks(storage) == []

    async def test_delete_user_tasks(self, store, storage):
        done = await store.create_task(_spec(points=100))
        await store.complete_task(done.id)
        await store.create_task(_spec(title="Open shop"))
        kept = await store.create_task(_spec(assignee="user-2", points=40))
        await store.complete_task(kept.id)
        writes_before = len(storage.writes)

        removed = await store.delete_user_tasks("user-1")

        assert removed == 2
        assert [task.id for task in store.tasks] == [kept.id]
        assert store.user_points == {"user-2": 40}
        assert store.task_stats().total == 1
        assert [entry.user_id for entry in store.leaderboard()] == ["user-2"]
        assert [task["id"] for task in _stored_tasks(storage)] == [kept.id]
        assert storage.writes[writes_before:] == [
            constants.STORAGE_KEY_TASKS,
            constants.STORAGE_KEY_USER_POINTS,
        ]

    async def test_delete_user_without_tasks_writes_nothing(self, store, storage):
        await store.create_task(_spec())
        writes_before = len(storage.writes)

        assert await store.delete_user_tasks("user-9") == 0
        assert len(storage.writes) == writes_before

    async def test_delete_unknown_task(self, store):
        with pytest.raises(NotFoundError):
            await store.delete_task("missing")


@pytest.mark.unit
class TestConfiguration:
    """Tests for reward tiers, monthly target and reset."""

    async def test_update_reward_tiers_replaces_and_sorts(self, store, storage):
        tiers = await store.update_reward_tiers(
            [{"id": "hi", "points": 900, "reward": "Trip"}, RewardTier(id="lo", points=100, reward="Lunch")]
        )

        assert [tier.id for tier in tiers] == ["lo", "hi"]
        stored = json.loads(storage.snapshot()[constants.STORAGE_KEY_REWARD_TIERS])
        assert [tier["id"] for tier in stored] == ["lo", "hi"]

    async def test_invalid_tier_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.update_reward_tiers([{"id": "x", "points": -5, "reward": "Nope"}])

        assert store.reward_tiers == list(DEFAULT_REWARD_TIERS)

    async def test_update_monthly_target(self, store, storage):
        await store.update_monthly_target(800)

        assert store.monthly_target == 800
        assert storage.snapshot()[constants.STORAGE_KEY_MONTHLY_TARGET] == "800"

    @pytest.mark.parametrize("target", [0, -10, "500", True])
    async def test_invalid_monthly_target(self, store, target):
        with pytest.raises(ValidationError):
            await store.update_monthly_target(target)

    async def test_attained_tier_for_user(self, store):
        task = await store.create_task(_spec(points=650))
        await store.complete_task(task.id)

        assert store.attained_tier("user-1").name == "Silver Performer"
        assert [tier.id for tier in store.reached_tiers("user-1")] == ["tier-1", "tier-2"]

    async def test_reset_restores_defaults(self, store, storage):
        task = await store.create_task(_spec())
        await store.complete_task(task.id)
        await store.update_monthly_target(900)

        await store.reset()

        assert store.tasks == []
        assert store.user_points == {}
        assert store.monthly_target == DEFAULT_MONTHLY_TARGET
        assert storage.snapshot()[constants.STORAGE_KEY_MONTHLY_TARGET] == str(DEFAULT_MONTHLY_TARGET)


@pytest.mark.unit
class TestPersistenceFailures:
    """Write failures are surfaced but never roll back in-memory state."""

    async def test_failed_write_keeps_in_memory_state(self, store, storage, notifier):
        storage.fail_writes = True

        task = await store.create_task(_spec())

        assert store.get_task(task.id) == task
        errors = [n for n in notifier.items if n.level == NotificationLevel.ERROR]
        assert errors
        assert errors[0].code == ErrorCode.ERR_PERSISTENCE

    async def test_save_reports_failure(self, store, storage):
        storage.fail_writes = True

        assert await store.save() is False

    async def test_save_replaces_collection(self, store, storage, make_task):
        replacement = [make_task(id="r1", points=5, status=TaskStatus.COMPLETED)]

        assert await store.save(replacement) is True

        assert [row["id"] for row in _stored_tasks(storage)] == ["r1"]
        assert store.user_points == {"user-1": 5}


@pytest.mark.unit
class TestRefresh:
    """Persisted state is authoritative on refresh."""

    async def test_refresh_picks_up_external_write(self, store, storage, make_task):
        external = make_task(id="remote-1")
        await storage.set(constants.STORAGE_KEY_TASKS, json.dumps([external.model_dump(mode="json")]))

        await store.refresh()

        assert [task.id for task in store.tasks] == ["remote-1"]

    async def test_refresh_overwrites_unpersisted_local_change(self, store, storage):
        await store.create_task(_spec())
        storage.fail_writes = True
        await store.create_task(_spec(title="Local only"))
        storage.fail_writes = False

        await store.refresh()

        assert [task.title for task in store.tasks] == ["Count register"]

    async def test_refresh_points(self, store, storage):
        await storage.set(constants.STORAGE_KEY_USER_POINTS, json.dumps({"user-9": 12}))

        await store.refresh_points()

        assert store.user_points == {"user-9": 12}


@pytest.mark.unit
class TestBackfill:
    """Tests for backfill_recurring."""

    async def test_backfill_inserts_missing_instances(self, storage, clock, make_task):
        template = make_task(
            id="t1", recurrence=TaskRecurrence.DAILY, due_date=date(2024, 3, 1), status=TaskStatus.COMPLETED
        )
        store = TaskStore(storage, clock=clock, seed_tasks=[template])
        await store.load()

        created = await store.backfill_recurring()

        assert len(created) == 1
        assert len(store.tasks) == 2
        assert await store.backfill_recurring() == []
