"""Tests for filtering and empty states over the synchronized list."""

import pytest

from tasksync.core.errors import ErrorCode, RemoteError
from tasksync.domain.task import Task
from tasksync.services.view_service import build_view, empty_message, filter_tasks
from tests.unit.mocks import make_record


TASKS = [
    Task.from_record(make_record("3", status="completed")),
    Task.from_record(make_record("2", status="in-progress")),
    Task.from_record(make_record("1", status="pending")),
]


@pytest.mark.unit
class TestFilterTasks:
    """Tests for filter_tasks."""

    def test_all_keeps_everything_in_order(self):
        assert [t.id for t in filter_tasks(TASKS, "all")] == ["3", "2", "1"]

    @pytest.mark.parametrize(
        ("status_filter", "expected"),
        [("pending", ["1"]), ("in-progress", ["2"]), ("completed", ["3"])],
    )
    def test_by_status(self, status_filter, expected):
        assert [t.id for t in filter_tasks(TASKS, status_filter)] == expected


@pytest.mark.unit
class TestEmptyMessage:
    """Tests for empty_message."""

    def test_no_tasks_at_all(self):
        assert empty_message(total=0, shown=0, status_filter="completed") == "No tasks yet"

    def test_filter_hides_everything(self):
        assert empty_message(total=2, shown=0, status_filter="completed") == "No completed tasks found."

    def test_something_shown(self):
        assert empty_message(total=2, shown=1, status_filter="pending") is None


@pytest.mark.unit
class TestBuildView:
    """Tests for build_view."""

    async def test_reflects_synchronizer_state(self, synchronizer, in_memory_remote):
        in_memory_remote.seed(
            make_record("1", status="pending", created="2025-01-01T00:00:00Z"),
            make_record("2", status="completed", created="2025-01-02T00:00:00Z"),
        )
        await synchronizer.initialize()

        view = build_view(synchronizer, "pending")

        assert [t.id for t in view.tasks] == ["1"]
        assert view.total == 2
        assert view.filter == "pending"
        assert not view.loading
        assert view.empty_message is None
        assert view.error is None

    async def test_surfaces_error(self, synchronizer, in_memory_remote):
        in_memory_remote.fail_next("list_records", RemoteError("connection refused"))
        await synchronizer.initialize()

        view = build_view(synchronizer)

        assert view.error is not None
        assert view.error.code == ErrorCode.ERR_REMOTE_UNAVAILABLE
        assert view.empty_message == "No tasks yet"
