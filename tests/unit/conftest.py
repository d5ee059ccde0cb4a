"""Pytest configuration and fixtures for unit tests."""

from collections.abc import Callable
from datetime import datetime

import pytest

from tasksync.modules.tasks.store import TaskStore
from tasksync.services.notification_service import Notifier
from tests.unit.mocks import FakeIdentityProvider, FlakyStorage, InMemoryDataStore


@pytest.fixture
def storage() -> FlakyStorage:
    """Provides a fresh in-memory storage port for each test."""
    return FlakyStorage()


@pytest.fixture
def notifier(clock: Callable[[], datetime]) -> Notifier:
    return Notifier(clock=clock)


@pytest.fixture
async def store(storage: FlakyStorage, notifier: Notifier, clock: Callable[[], datetime]) -> TaskStore:
    """A loaded task store over empty storage."""
    task_store = TaskStore(storage, notifier=notifier, clock=clock)
    await task_store.load()
    return task_store


@pytest.fixture
def data_store() -> InMemoryDataStore:
    return InMemoryDataStore()


@pytest.fixture
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()
