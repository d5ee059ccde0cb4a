"""Realtime sync bridge between the remote change feed and the task store.

The bridge holds no task state. It subscribes to two independent channels,
one for the tasks table and one for the points table, and turns every change
event into a refetch followed by a forced refresh. Events are handled in
arrival order per channel; bursts that arrive while a channel is busy are
coalesced into a single refetch. No ordering is kept between the two channels.
"""

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum

from tasksync.core.backend import ChangeEvent, ChangeFeed, SubscriptionHandle
from tasksync.core.config import constants, settings
from tasksync.core.errors import AuthError
from tasksync.core.logging import log_with_context, span
from tasksync.services.notification_service import Notifier


logger = logging.getLogger(__name__)

RefetchCallback = Callable[[], Awaitable[None]]
RefreshCallback = Callable[[], Awaitable[None] | None]


class BridgeState(StrEnum):
    """Subscription state of the bridge."""

    DISCONNECTED = "disconnected"
    SUBSCRIBED = "subscribed"


class _Channel:
    """One subscribed channel with its event queue and worker."""

    def __init__(self, name: str, table: str, refetch: RefetchCallback) -> None:
        self.name = name
        self.table = table
        self.refetch = refetch
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self.handle: SubscriptionHandle | None = None
        self.worker: asyncio.Task[None] | None = None
        self.refresh_count = 0


class RealtimeSyncBridge:
    """Two-state bridge: disconnected (initial) or subscribed to both channels.

    Args:
        feed: Change feed to subscribe to
        on_tasks_changed: Refetch run after changes to the tasks table
        on_points_changed: Refetch run after changes to the points table
        force_refresh: Called after every refetch so views re-render
        notifier: Receives a notification when a refetch fails
        coalesce_seconds: How long a channel waits for more events before refetching
    """

    def __init__(
        self,
        feed: ChangeFeed,
        *,
        on_tasks_changed: RefetchCallback,
        on_points_changed: RefetchCallback,
        force_refresh: RefreshCallback | None = None,
        notifier: Notifier | None = None,
        coalesce_seconds: float | None = None,
    ) -> None:
        self._feed = feed
        self._force_refresh = force_refresh
        self._notifier = notifier
        self._coalesce_seconds = settings.sync_coalesce_seconds if coalesce_seconds is None else coalesce_seconds
        self._channels = (
            _Channel(constants.TASKS_CHANNEL, constants.TASKS_TABLE, on_tasks_changed),
            _Channel(constants.POINTS_CHANNEL, constants.POINTS_TABLE, on_points_changed),
        )
        self._state = BridgeState.DISCONNECTED
        self._user_id: str | None = None

    @property
    def state(self) -> BridgeState:
        return self._state

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def refresh_counts(self) -> dict[str, int]:
        """Refetch-and-refresh cycles run per channel since construction."""
        return {channel.name: channel.refresh_count for channel in self._channels}

    async def connect(self, user_id: str | None) -> None:
        """Subscribe both channels for an authenticated user.

        Calling connect while already subscribed is a no-op.

        Raises:
            AuthError: If no authenticated user id is given
        """
        if not user_id:
            raise AuthError("Realtime sync requires an authenticated user")
        if self._state == BridgeState.SUBSCRIBED:
            logger.debug("Realtime bridge already subscribed", extra={"user_id": self._user_id})
            return

        with span("sync_bridge.connect"):
            for channel in self._channels:
                channel.queue = asyncio.Queue()
                channel.handle = self._feed.subscribe(
                    channel.name,
                    table=channel.table,
                    event="*",
                    callback=self._enqueue(channel),
                )
                channel.worker = asyncio.create_task(self._drain(channel), name=f"sync-{channel.name}")

            self._user_id = user_id
            self._state = BridgeState.SUBSCRIBED
            logger.info("Realtime bridge subscribed", extra={"user_id": user_id})

    async def disconnect(self) -> None:
        """Release both channels. Safe to call with no active channels."""
        for channel in self._channels:
            if channel.handle is not None:
                self._feed.unsubscribe(channel.handle)
                channel.handle = None
            if channel.worker is not None:
                channel.worker.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await channel.worker
                channel.worker = None

        if self._state == BridgeState.SUBSCRIBED:
            logger.info("Realtime bridge disconnected", extra={"user_id": self._user_id})
        self._user_id = None
        self._state = BridgeState.DISCONNECTED

    async def wait_idle(self) -> None:
        """Wait until every queued change event has been handled."""
        for channel in self._channels:
            if channel.worker is not None:
                await channel.queue.join()

    def _enqueue(self, channel: _Channel) -> Callable[[ChangeEvent], None]:
        # Feed callbacks run on the event loop thread
        def on_change(event: ChangeEvent) -> None:
            logger.debug("Change event", extra={"channel": channel.name, "event": event.event, "table": event.table})
            channel.queue.put_nowait(event)

        return on_change

    async def _drain(self, channel: _Channel) -> None:
        while True:
            await channel.queue.get()
            handled = 1
            if self._coalesce_seconds > 0:
                await asyncio.sleep(self._coalesce_seconds)
            while not channel.queue.empty():
                channel.queue.get_nowait()
                handled += 1

            try:
                await self._refresh(channel, handled)
            finally:
                for _ in range(handled):
                    channel.queue.task_done()

    async def _refresh(self, channel: _Channel, handled: int) -> None:
        try:
            await channel.refetch()
            if self._force_refresh is not None:
                result = self._force_refresh()
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            # The channel keeps running; the next change event retries the refetch
            logger.exception("Realtime refetch failed", extra={"channel": channel.name, "error": str(e)})
            if self._notifier is not None:
                self._notifier.exception(e)
            return

        channel.refresh_count += 1
        log_with_context(logger, "debug", "Realtime refresh", channel=channel.name, events=handled)
