"""HTTP interface over the synchronized task view and the command layer."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tasksync.core.errors import (
    AuthError,
    ChannelError,
    RecordNotFoundError,
    RemoteError,
    TaskSyncError,
    ValidationError,
    classify_error_with_response,
)
from tasksync.core.remote import RemoteCollectionService
from tasksync.core.session import SessionContext
from tasksync.domain.task import TaskPriority, TaskStatus
from tasksync.services import auth_service, task_service
from tasksync.services.sync_service import TaskSynchronizer
from tasksync.services.view_service import StatusFilter, TaskView, build_view


logger = logging.getLogger(__name__)

router = APIRouter(tags=["tasks"])

# Most specific first
_ERROR_STATUS_CODES: list[tuple[type[TaskSyncError], int]] = [
    (ValidationError, 422),
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (RecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (RemoteError, status.HTTP_502_BAD_GATEWAY),
    (ChannelError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


@dataclass
class AppState:
    """Per-process client state: one remote service, one session, one synchronizer."""

    remote: RemoteCollectionService
    session: SessionContext
    synchronizer: TaskSynchronizer
    sign_in_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SignInRequest(BaseModel):
    """Credentials for opening a session."""

    email: str
    password: str = ""


class CreateTaskRequest(BaseModel):
    """Task form submission."""

    title: str = ""
    description: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING


class ToggleStatusRequest(BaseModel):
    """Status the task had when the user clicked "toggle complete"."""

    current_status: TaskStatus


class Accepted(BaseModel):
    """Acknowledgement of a dispatched request; the list updates when the change event arrives."""

    status: str = "accepted"
    requested_status: TaskStatus | None = Field(default=None, description="Status requested by a toggle")


def get_state(request: Request) -> AppState:
    """Application state dependency."""
    return request.app.state.tasksync


async def handle_tasksync_error(request: Request, exc: Exception) -> JSONResponse:
    """Render a TaskSyncError as an ErrorResponse with a matching status code."""
    status_code = next(
        (code for error_type, code in _ERROR_STATUS_CODES if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    response = classify_error_with_response(exc)
    logger.warning(
        "request_failed",
        extra={"path": request.url.path, "code": response.code, "status_code": status_code, "error": str(exc)},
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


@router.post("/session")
async def open_session(body: SignInRequest, state: AppState = Depends(get_state)) -> dict[str, Any]:
    """Sign in and start synchronizing the user's tasks."""
    async with state.sign_in_lock:
        session = await auth_service.sign_in(
            remote=state.remote,
            session=state.session,
            synchronizer=state.synchronizer,
            email=body.email,
            password=body.password,
        )
        return {"user_id": session.identity, "task_count": len(state.synchronizer.tasks)}


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(state: AppState = Depends(get_state)) -> None:
    """Sign out and stop synchronizing."""
    async with state.sign_in_lock:
        await auth_service.sign_out(remote=state.remote, session=state.session, synchronizer=state.synchronizer)


@router.get("/tasks")
async def list_tasks(
    status_filter: StatusFilter = Query(default="all", alias="status"),
    state: AppState = Depends(get_state),
) -> TaskView:
    """Current synchronized list, filtered by status."""
    state.session.require_identity()
    return build_view(state.synchronizer, status_filter)


@router.delete("/tasks/error", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_error(state: AppState = Depends(get_state)) -> None:
    """Dismiss the synchronizer's error message."""
    state.synchronizer.clear_error()


@router.post("/tasks", status_code=status.HTTP_202_ACCEPTED)
async def create_task(body: CreateTaskRequest, state: AppState = Depends(get_state)) -> Accepted:
    """Request creation of a task."""
    await task_service.create_task(
        remote=state.remote,
        session=state.session,
        title=body.title,
        description=body.description,
        priority=body.priority,
        status=body.status,
    )
    return Accepted()


@router.patch("/tasks/{task_id}", status_code=status.HTTP_202_ACCEPTED)
async def update_task(
    task_id: str,
    fields: dict[str, Any] = Body(...),
    state: AppState = Depends(get_state),
) -> Accepted:
    """Request a partial update of a task."""
    await task_service.update_task(remote=state.remote, session=state.session, task_id=task_id, fields=fields)
    return Accepted()


@router.post("/tasks/{task_id}/toggle", status_code=status.HTTP_202_ACCEPTED)
async def toggle_task(
    task_id: str,
    body: ToggleStatusRequest,
    state: AppState = Depends(get_state),
) -> Accepted:
    """Request the "toggle complete" transition."""
    requested = await task_service.toggle_status(
        remote=state.remote,
        session=state.session,
        task_id=task_id,
        current_status=body.current_status,
    )
    return Accepted(requested_status=requested)


@router.delete("/tasks/{task_id}", status_code=status.HTTP_202_ACCEPTED)
async def delete_task(task_id: str, state: AppState = Depends(get_state)) -> Accepted:
    """Request deletion of a task."""
    await task_service.delete_task(remote=state.remote, session=state.session, task_id=task_id)
    return Accepted()
