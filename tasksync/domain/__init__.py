"""Domain models and DTOs."""

from tasksync.domain.create_models import TaskCreate
from tasksync.domain.reward import RewardTier
from tasksync.domain.task import Task, TaskCategory, TaskPriority, TaskRecurrence, TaskStatus
from tasksync.domain.update_models import TaskUpdate
from tasksync.domain.user import DbRole, User, UserRole, from_db_role, to_db_role


__all__ = [
    "DbRole",
    "RewardTier",
    "Task",
    "TaskCategory",
    "TaskCreate",
    "TaskPriority",
    "TaskRecurrence",
    "TaskStatus",
    "TaskUpdate",
    "User",
    "UserRole",
    "from_db_role",
    "to_db_role",
]
