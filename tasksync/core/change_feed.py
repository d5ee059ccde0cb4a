"""In-process change feed used when no remote realtime service is configured."""

import itertools
import logging
from typing import Any

from tasksync.core.backend import ChangeCallback, ChangeEvent, SubscriptionHandle


logger = logging.getLogger(__name__)


class InMemoryChangeFeed:
    """Publish/subscribe change feed delivering events on the caller's thread.

    Events published for a table are delivered, in publish order, to every
    subscription on that table whose event mask is "*" or matches the event.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[SubscriptionHandle, ChangeCallback] = {}
        self._keys = itertools.count(1)

    @property
    def active_channels(self) -> list[str]:
        """Channel names with a live subscription."""
        return [handle.channel for handle in self._subscriptions]

    def subscribe(self, channel: str, *, table: str, event: str = "*", callback: ChangeCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle(channel=channel, table=table, event=event, key=next(self._keys))
        self._subscriptions[handle] = callback
        logger.debug("Subscribed channel %s to table %s", channel, table)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        if self._subscriptions.pop(handle, None) is not None:
            logger.debug("Removed channel %s", handle.channel)

    def publish(self, *, table: str, event: str, payload: dict[str, Any] | None = None) -> int:
        """Deliver a change to matching subscribers and return how many received it."""
        change = ChangeEvent(event=event, schema="public", table=table, payload=payload or {})
        delivered = 0
        for handle, callback in list(self._subscriptions.items()):
            if handle.table == table and handle.event in ("*", event):
                callback(change)
                delivered += 1
        return delivered
