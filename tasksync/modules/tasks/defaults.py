"""First-run defaults for the task store."""

from tasksync.domain.reward import RewardTier
from tasksync.domain.task import Task


# Tasks written to storage on first run; the production seed starts empty and
# tasks arrive from administrators.
DEFAULT_TASKS: tuple[Task, ...] = ()

DEFAULT_REWARD_TIERS: tuple[RewardTier, ...] = (
    RewardTier(id="tier-1", name="Bronze Achiever", points=300, reward="$50 cash bonus"),
    RewardTier(id="tier-2", name="Silver Performer", points=500, reward="$100 cash bonus"),
    RewardTier(id="tier-3", name="Gold Champion", points=1000, reward="$200 cash bonus + extra day off"),
)

DEFAULT_MONTHLY_TARGET = 500
