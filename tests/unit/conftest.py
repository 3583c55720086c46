"""Pytest configuration and fixtures for unit tests."""

from collections.abc import AsyncGenerator

import pytest

from tasksync.core.session import SessionContext
from tasksync.services.sync_service import TaskSynchronizer
from tests.unit.mocks import InMemoryCollectionService


@pytest.fixture
def in_memory_remote() -> InMemoryCollectionService:
    """Provides a fresh InMemoryCollectionService for each test."""
    return InMemoryCollectionService()


@pytest.fixture
async def synchronizer(
    in_memory_remote: InMemoryCollectionService, signed_in_session: SessionContext
) -> AsyncGenerator[TaskSynchronizer]:
    """Synchronizer over the in-memory remote, torn down after the test."""
    sync = TaskSynchronizer(
        remote=in_memory_remote,
        session=signed_in_session,
        resubscribe_max_attempts=3,
        resubscribe_base_delay=0,
    )
    yield sync
    await sync.teardown()
