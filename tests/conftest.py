"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from tasksync.core.session import SessionContext
from tasksync.core.sqlite_service import SQLiteCollectionService


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Path of a throwaway SQLite database file."""
    return str(tmp_path / "tasksync.db")


@pytest.fixture
async def sqlite_service(db_path: str) -> AsyncGenerator[SQLiteCollectionService]:
    """Embedded collection service on a fresh database, closed after the test."""
    service = SQLiteCollectionService(db_path=db_path, collection="tasks")
    yield service
    await service.aclose()


@pytest.fixture
def signed_in_session() -> SessionContext:
    """Session already opened for user_1."""
    session = SessionContext()
    session.open(identity="user_1", token="token_1", email="user1@example.com")
    return session
