"""Storage port over named JSON entries, with in-memory, SQLite and remote adapters.

The task store only ever reads and writes four keys (tasks, rewardTiers,
monthlyTarget, userPoints), each holding a JSON string. Which adapter backs
the port decides whether the local durable cache or the relational store is
the system of record.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

from tasksync.core.backend import DataStore
from tasksync.core.config import constants
from tasksync.core.errors import PersistenceError, TaskSyncError


logger = logging.getLogger(__name__)


class StoragePort(Protocol):
    """Key/value storage of JSON strings."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryStorage:
    """Dict-backed storage, used for tests and ephemeral sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Return a copy of all stored entries."""
        return dict(self._data)


class SqliteStorage:
    """Local durable cache persisted to a single SQLite table."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).resolve()
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def _connection(self) -> aiosqlite.Connection:
        async with self._lock:
            if self._conn is None:
                try:
                    self._db_path.parent.mkdir(parents=True, exist_ok=True)
                    conn = await aiosqlite.connect(str(self._db_path))
                    await conn.execute("PRAGMA journal_mode = WAL")
                    await conn.execute(
                        "CREATE TABLE IF NOT EXISTS kv_store ("
                        "key TEXT PRIMARY KEY, value TEXT NOT NULL, updated_at TEXT NOT NULL)"
                    )
                    await conn.commit()
                except (aiosqlite.Error, OSError) as e:
                    logger.error("sqlite_open_failed", extra={"db_path": str(self._db_path), "error": str(e)})
                    raise PersistenceError(f"Failed to open local cache at {self._db_path}: {e}") from e
                self._conn = conn
                logger.info("Opened local cache", extra={"db_path": str(self._db_path)})
            return self._conn

    async def get(self, key: str) -> str | None:
        conn = await self._connection()
        try:
            cursor = await conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.error("sqlite_get_failed", extra={"key": key, "error": str(e)})
            raise PersistenceError(f"Failed to read {key}: {e}") from e
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        conn = await self._connection()
        try:
            await conn.execute(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, value, datetime.now().isoformat()),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            logger.error("sqlite_set_failed", extra={"key": key, "error": str(e)})
            raise PersistenceError(f"Failed to write {key}: {e}") from e

    async def delete(self, key: str) -> None:
        conn = await self._connection()
        try:
            await conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await conn.commit()
        except aiosqlite.Error as e:
            logger.error("sqlite_delete_failed", extra={"key": key, "error": str(e)})
            raise PersistenceError(f"Failed to delete {key}: {e}") from e

    async def close(self) -> None:
        """Close the underlying connection if open."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None


# Task fields whose column name differs in the relational store
_TASK_COLUMN_NAMES = {"assignee": "assigned_to"}
_TASK_FIELD_NAMES = {column: field for field, column in _TASK_COLUMN_NAMES.items()}

# app_settings row marking that the task list has been written at least once
TASKS_SEEDED_SETTING = "tasks_seeded"


def task_to_row(task: dict[str, Any]) -> dict[str, Any]:
    """Convert a serialized task into a tasks-table row."""
    row = {_TASK_COLUMN_NAMES.get(key, key): value for key, value in task.items()}
    if row.get("status") == "in-progress":
        row["status"] = "in_progress"
    return row


def row_to_task(row: dict[str, Any]) -> dict[str, Any]:
    """Convert a tasks-table row into a serialized task."""
    task = {_TASK_FIELD_NAMES.get(key, key): value for key, value in row.items() if key != "updated_at"}
    if task.get("status") == "in_progress":
        task["status"] = "in-progress"
    task.setdefault("description", "")
    task["description"] = task["description"] or ""
    return task


class RemoteStorage:
    """Storage port over the relational store tables.

    Maps tasks to the tasks table, reward tiers to reward_tiers, the monthly
    target to app_settings, and user points to user_points rows for the
    current month.
    """

    def __init__(self, data_store: DataStore, *, clock: Callable[[], datetime] = datetime.now) -> None:
        self._store = data_store
        self._clock = clock

    def _period(self) -> tuple[int, int]:
        now = self._clock()
        return now.month, now.year

    async def get(self, key: str) -> str | None:
        try:
            return await self._get(key)
        except TaskSyncError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to read {key} from remote store: {e}") from e

    async def _get(self, key: str) -> str | None:
        if key == constants.STORAGE_KEY_TASKS:
            rows = await self._store.select("tasks", order="created_at.asc")
            if rows:
                return json.dumps([row_to_task(row) for row in rows])
            seeded = await self._store.select("app_settings", filters={"setting_key": TASKS_SEEDED_SETTING})
            return "[]" if seeded else None

        if key == constants.STORAGE_KEY_REWARD_TIERS:
            rows = await self._store.select("reward_tiers", order="points.asc")
            return json.dumps(rows) if rows else None

        if key == constants.STORAGE_KEY_MONTHLY_TARGET:
            rows = await self._store.select("app_settings", filters={"setting_key": "monthly_target"})
            return json.dumps(int(rows[0]["setting_value"])) if rows else None

        if key == constants.STORAGE_KEY_USER_POINTS:
            month, year = self._period()
            rows = await self._store.select("user_points", filters={"month": month, "year": year})
            return json.dumps({row["user_id"]: row["points"] for row in rows})

        raise PersistenceError(f"Unknown storage key: {key}")

    async def set(self, key: str, value: str) -> None:
        try:
            await self._set(key, json.loads(value))
        except TaskSyncError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to write {key} to remote store: {e}") from e

    async def _replace_rows(self, table: str, rows: list[dict[str, Any]]) -> None:
        """Upsert rows by id and delete rows no longer present."""
        await self._store.upsert(table, rows, on_conflict="id")
        keep = {row["id"] for row in rows}
        for existing in await self._store.select(table):
            if existing["id"] not in keep:
                await self._store.delete(table, filters={"id": existing["id"]})

    async def _set(self, key: str, data: Any) -> None:
        if key == constants.STORAGE_KEY_TASKS:
            await self._replace_rows("tasks", [task_to_row(task) for task in data])
            await self._store.upsert(
                "app_settings",
                [{"setting_key": TASKS_SEEDED_SETTING, "setting_value": "true"}],
                on_conflict="setting_key",
            )
        elif key == constants.STORAGE_KEY_REWARD_TIERS:
            await self._replace_rows("reward_tiers", list(data))
        elif key == constants.STORAGE_KEY_MONTHLY_TARGET:
            await self._store.upsert(
                "app_settings",
                [{"setting_key": "monthly_target", "setting_value": str(data)}],
                on_conflict="setting_key",
            )
        elif key == constants.STORAGE_KEY_USER_POINTS:
            month, year = self._period()
            rows = [
                {"user_id": user_id, "points": points, "month": month, "year": year}
                for user_id, points in data.items()
            ]
            await self._store.upsert("user_points", rows, on_conflict="user_id,month,year")
            # The map is the whole month: users missing from it have no points.
            for existing in await self._store.select("user_points", filters={"month": month, "year": year}):
                if existing["user_id"] not in data:
                    await self._store.delete(
                        "user_points", filters={"user_id": existing["user_id"], "month": month, "year": year}
                    )
        else:
            raise PersistenceError(f"Unknown storage key: {key}")

    async def delete(self, key: str) -> None:
        if key == constants.STORAGE_KEY_TASKS:
            await self._replace_rows("tasks", [])
            await self._store.delete("app_settings", filters={"setting_key": TASKS_SEEDED_SETTING})
        elif key == constants.STORAGE_KEY_REWARD_TIERS:
            await self._set(key, [])
        elif key == constants.STORAGE_KEY_USER_POINTS:
            month, year = self._period()
            await self._store.delete("user_points", filters={"month": month, "year": year})
        elif key == constants.STORAGE_KEY_MONTHLY_TARGET:
            await self._store.delete("app_settings", filters={"setting_key": "monthly_target"})
