"""Transient user notifications and goal milestone messages."""

import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime

from tasksync.core.config import constants
from tasksync.core.errors import classify_error_with_response
from tasksync.models.service_models import Notification, NotificationLevel


logger = logging.getLogger(__name__)

_MILESTONE_MESSAGES = {
    50: "You've reached 50% of your monthly points goal!",
    80: "You're at 80% of your monthly points goal! Almost there!",
    100: "Congratulations! You've reached 100% of your monthly points goal!",
}


def milestones_crossed(before_percent: int, after_percent: int) -> list[int]:
    """Goal milestones passed when progress moves from before to after."""
    return [m for m in constants.GOAL_MILESTONES_PERCENT if before_percent < m <= after_percent]


class Notifier:
    """Collects transient notifications for the UI to display.

    Only the most recent ``maxlen`` notifications are kept; listeners are
    called synchronously for every new notification.
    """

    def __init__(self, *, maxlen: int = 50, clock: Callable[[], datetime] = datetime.now) -> None:
        self._items: deque[Notification] = deque(maxlen=maxlen)
        self._listeners: list[Callable[[Notification], None]] = []
        self._clock = clock

    @property
    def items(self) -> list[Notification]:
        return list(self._items)

    def add_listener(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def _push(self, level: NotificationLevel, message: str, code: str | None = None) -> Notification:
        notification = Notification(level=level, message=message, code=code, created_at=self._clock())
        self._items.append(notification)
        for listener in self._listeners:
            listener(notification)
        return notification

    def success(self, message: str) -> Notification:
        return self._push(NotificationLevel.SUCCESS, message)

    def info(self, message: str) -> Notification:
        return self._push(NotificationLevel.INFO, message)

    def error(self, message: str, code: str | None = None) -> Notification:
        logger.warning("User notified of error: %s", message, extra={"code": code})
        return self._push(NotificationLevel.ERROR, message, code)

    def exception(self, exc: Exception) -> Notification:
        """Surface an exception using its classified user-facing message."""
        response = classify_error_with_response(exc)
        return self.error(f"{response.message} {response.suggestion}", response.code)

    def goal_progress(self, before_percent: int, after_percent: int) -> list[Notification]:
        """Announce every goal milestone crossed by a completion."""
        return [self.success(_MILESTONE_MESSAGES[m]) for m in milestones_crossed(before_percent, after_percent)]

    def clear(self) -> None:
        self._items.clear()
