"""End-to-end workflows across sessions sharing one backend."""

import pytest

from tasksync.core.change_feed import InMemoryChangeFeed
from tasksync.core.config import constants
from tasksync.core.storage import RemoteStorage
from tasksync.domain.task import TaskStatus
from tasksync.domain.user import UserRole
from tasksync.interface.email_sender import SendEmailResult
from tasksync.services.session_service import build_session
from tests.unit.mocks import FakeIdentityProvider, InMemoryDataStore


async def _approve_anything(*, name: str, email: str, role: str) -> SendEmailResult:
    return SendEmailResult(success=True, email_id=f"email-{email}")


@pytest.fixture
def backend(clock):
    data_store = InMemoryDataStore()
    identity = FakeIdentityProvider()
    data_store.tables["profiles"].append(
        {"id": "admin-1", "full_name": "Ada", "email": "ada@example.com", "role": "admin", "is_approved": True}
    )
    data_store.tables["user_roles"].append({"user_id": "admin-1", "role": "admin"})
    identity.add_account("ada@example.com", "pw", "admin-1")
    return data_store, identity, InMemoryChangeFeed()


def _session(backend, clock):
    data_store, identity, feed = backend
    return build_session(
        storage=RemoteStorage(data_store, clock=clock),
        identity=identity,
        data_store=data_store,
        feed=feed,
        clock=clock,
        send_approval_email=_approve_anything,
    )


@pytest.mark.integration
async def test_register_approve_and_complete_recurring_task(backend, clock) -> None:
    """A new employee is approved, gets a daily task and completes it while the admin watches."""
    data_store, _, feed = backend
    admin = _session(backend, clock)
    employee = _session(backend, clock)
    await admin.start()
    await employee.start()

    registered = await employee.users.register("eve@example.com", "pw", "Eve")
    assert (await employee.sign_in("eve@example.com", "pw")).user is None

    await admin.sign_in("ada@example.com", "pw")
    await admin.users.approve_user(registered.user.id, UserRole.EMPLOYEE)
    task = await admin.store.create_task(
        {
            "title": "Count register",
            "assignee": registered.user.id,
            "assigned_by": "admin-1",
            "due_date": "2024-03-10",
            "recurrence": "daily",
            "points": 300,
        }
    )

    signed_in = await employee.sign_in("eve@example.com", "pw")
    assert signed_in.user.role == UserRole.EMPLOYEE
    assert employee.store.get_task(task.id).status == TaskStatus.PENDING

    result = await employee.store.complete_task(task.id)
    feed.publish(table=constants.TASKS_TABLE, event="UPDATE", payload={"id": task.id})
    feed.publish(table=constants.POINTS_TABLE, event="UPDATE")
    await admin.bridge.wait_idle()

    assert admin.store.get_task(task.id).status == TaskStatus.COMPLETED
    assert admin.store.get_task(result.next_occurrence.id).due_date.isoformat() == "2024-03-11"
    assert admin.store.user_points == {registered.user.id: 300}
    assert admin.store.attained_tier(registered.user.id).name == "Bronze Achiever"
    assert any("50%" in n.message for n in employee.notifier.items)

    await admin.close()
    await employee.close()
