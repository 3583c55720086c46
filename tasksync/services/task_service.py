"""Command layer: turns user intents into write requests against the remote collection.

Commands report only whether the request succeeded. They never return or
store the resulting record; the synchronizer observes the change event.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from tasksync.core.errors import RecordNotFoundError, ValidationError
from tasksync.core.logging import log_with_user_context, span
from tasksync.core.remote import RemoteCollectionService
from tasksync.core.session import SessionContext
from tasksync.domain.create_models import TaskCreate
from tasksync.domain.task import TaskPriority, TaskStatus, next_toggle_status
from tasksync.domain.update_models import TaskUpdate


logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = frozenset({"id", "owner", "created"})


def _first_error_message(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    return str(first.get("msg", "Invalid input")).removeprefix("Value error, ")


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


async def create_task(
    *,
    remote: RemoteCollectionService,
    session: SessionContext,
    title: str,
    description: str | None = None,
    priority: TaskPriority = TaskPriority.MEDIUM,
    status: TaskStatus = TaskStatus.PENDING,
) -> None:
    """Request creation of a task owned by the signed-in user.

    Args:
        remote: Remote collection service
        session: Session of the signed-in user
        title: Task title (must not be blank)
        description: Optional details; blank is stored as null
        priority: Task priority
        status: Initial status

    Raises:
        ValidationError: If the title is blank (no request is sent)
        AuthError: If nobody is signed in
        RemoteError: If the remote service rejects the request
    """
    with span("task_service.create_task"):
        try:
            payload = TaskCreate(title=title, description=description, priority=priority, status=status)
        except PydanticValidationError as e:
            raise ValidationError(_first_error_message(e)) from e

        owner = session.require_identity()
        await remote.create_record(data={**payload.model_dump(mode="json"), "owner": owner})
        log_with_user_context(logger, "info", "Requested task creation", user_id=owner, priority=payload.priority)


async def update_task(
    *,
    remote: RemoteCollectionService,
    session: SessionContext,
    task_id: str,
    fields: dict[str, Any],
) -> None:
    """Request a partial update of one task and stamp its updated time.

    Raises:
        ValidationError: If a field is unknown, immutable or invalid
        AuthError: If nobody is signed in
        RemoteError: If the task is not found or not owned, or the request fails
    """
    with span("task_service.update_task"):
        immutable = _IMMUTABLE_FIELDS.intersection(fields)
        if immutable:
            msg = f"Fields cannot be changed: {', '.join(sorted(immutable))}"
            raise ValidationError(msg)

        try:
            changes = TaskUpdate.model_validate(fields)
        except PydanticValidationError as e:
            raise ValidationError(_first_error_message(e)) from e

        data = changes.model_dump(mode="json", exclude_unset=True)
        if not data:
            msg = "Nothing to update"
            raise ValidationError(msg)

        owner = session.require_identity()
        await remote.update_record(record_id=task_id, owner=owner, data={**data, "updated": _now()})
        log_with_user_context(
            logger, "info", "Requested task update", user_id=owner, task_id=task_id, fields=sorted(data)
        )


async def toggle_status(
    *,
    remote: RemoteCollectionService,
    session: SessionContext,
    task_id: str,
    current_status: TaskStatus,
) -> TaskStatus:
    """Request the "toggle complete" transition: completed becomes pending, anything else completed.

    Returns:
        The status that was requested
    """
    with span("task_service.toggle_status"):
        next_status = next_toggle_status(current_status)
        await update_task(remote=remote, session=session, task_id=task_id, fields={"status": next_status})
        return next_status


async def delete_task(
    *,
    remote: RemoteCollectionService,
    session: SessionContext,
    task_id: str,
) -> None:
    """Request deletion of one task.

    A task that is already gone, or that the server hides from the caller,
    counts as deleted.

    Raises:
        AuthError: If nobody is signed in
        RemoteError: If the request fails for any other reason
    """
    with span("task_service.delete_task"):
        owner = session.require_identity()
        try:
            await remote.delete_record(record_id=task_id, owner=owner)
        except RecordNotFoundError:
            log_with_user_context(
                logger, "warning", "Delete matched no task; treating as deleted", user_id=owner, task_id=task_id
            )
            return
        log_with_user_context(logger, "info", "Requested task deletion", user_id=owner, task_id=task_id)
