"""Per-user session wiring the task store, user service and realtime bridge.

The realtime bridge subscribes once a user signs in and releases its channels
on sign-out, so remote changes only reach the store for an authenticated user.
Approval emails and account deletion go through the privileged request
handlers, never directly from the session.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from tasksync.core.backend import ChangeFeed, DataStore, IdentityProvider
from tasksync.core.config import settings
from tasksync.core.storage import StoragePort
from tasksync.interface.functions_client import FunctionsClient
from tasksync.models.service_models import AuthResult
from tasksync.modules.tasks.store import TaskStore
from tasksync.services.notification_service import Notifier
from tasksync.services.sync_bridge import RealtimeSyncBridge, RefreshCallback
from tasksync.services.user_service import ApprovalEmailSender, UserService


logger = logging.getLogger(__name__)


class Session:
    """One user's view of the application."""

    def __init__(self, *, store: TaskStore, users: UserService, bridge: RealtimeSyncBridge, notifier: Notifier) -> None:
        self.store = store
        self.users = users
        self.bridge = bridge
        self.notifier = notifier

    async def start(self) -> None:
        """Load persisted task state."""
        await self.store.load()

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Sign in and, on success, subscribe to remote changes."""
        result = await self.users.sign_in(email, password)
        if result.user is not None:
            await self.bridge.connect(result.user.id)
            await self.store.refresh()
        return result

    async def delete_user(self, user_id: str) -> int:
        """Delete an account, then every task assigned to it.

        Tasks are only removed once the account deletion succeeded.

        Returns:
            Number of tasks removed
        """
        await self.users.delete_user(user_id)
        return await self.store.delete_user_tasks(user_id)

    async def sign_out(self) -> None:
        await self.bridge.disconnect()
        await self.users.sign_out()

    async def close(self) -> None:
        await self.bridge.disconnect()


def build_session(
    *,
    storage: StoragePort,
    identity: IdentityProvider,
    data_store: DataStore,
    feed: ChangeFeed,
    functions: FunctionsClient | None = None,
    force_refresh: RefreshCallback | None = None,
    notifier: Notifier | None = None,
    clock: Callable[[], datetime] = datetime.now,
    send_approval_email: ApprovalEmailSender | None = None,
    delete_user: Callable[[str], Awaitable[None]] | None = None,
) -> Session:
    """Compose a session from its collaborators.

    Without explicit callables, approval emails and deletions are sent to the
    handlers at ``settings.functions_base_url``.
    """
    notifier = notifier or Notifier(clock=clock)
    functions = functions or FunctionsClient(settings.functions_base_url)
    store = TaskStore(storage, notifier=notifier, clock=clock)
    users = UserService(
        identity,
        data_store,
        notifier=notifier,
        send_approval_email=send_approval_email or functions.send_approval_email,
        delete_user=delete_user or functions.delete_user,
        clock=clock,
    )
    bridge = RealtimeSyncBridge(
        feed,
        on_tasks_changed=store.refresh,
        on_points_changed=store.refresh_points,
        force_refresh=force_refresh,
        notifier=notifier,
    )
    logger.debug("Built session", extra={"functions_url": functions.base_url})
    return Session(store=store, users=users, bridge=bridge, notifier=notifier)
