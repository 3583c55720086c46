"""tasksync - personal task lists kept in sync with a remote collection."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pocketbase.client import ClientResponseError

from tasksync.core.config import settings
from tasksync.core.errors import TaskSyncError
from tasksync.core.logging import configure_logfire, instrument_fastapi, instrument_httpx
from tasksync.core.pocketbase_service import PocketBaseCollectionService
from tasksync.core.remote import RemoteCollectionService
from tasksync.core.schema import check_owner_rules
from tasksync.core.session import SessionContext
from tasksync.core.sqlite_service import SQLiteCollectionService
from tasksync.interface.tasks_router import AppState, handle_tasksync_error
from tasksync.interface.tasks_router import router as tasks_router
from tasksync.services.sync_service import TaskSynchronizer


logger = logging.getLogger(__name__)


def build_remote() -> RemoteCollectionService:
    """Create the remote collection service selected by settings.backend."""
    if settings.backend == "sqlite":
        return SQLiteCollectionService()
    return PocketBaseCollectionService()


async def validate_ownership_rules() -> None:
    """Verify the PocketBase tasks collection only exposes records to their owner.

    Skipped when no admin credentials are configured. Exits the process when
    a rule is not owner-scoped.
    """
    if not (settings.pocketbase_admin_email and settings.pocketbase_admin_password):
        logger.info("startup_validation", extra={"check": "owner_rules", "status": "skipped"})
        return

    try:
        unscoped = await check_owner_rules()
    except (httpx.HTTPError, ClientResponseError) as e:
        logger.warning("startup_validation", extra={"check": "owner_rules", "status": "unavailable", "error": str(e)})
        return

    if unscoped:
        logger.error("startup_validation_failed", extra={"check": "owner_rules", "rules": unscoped})
        print(  # noqa: T201
            f"\n❌ Startup validation failed: tasks collection rules {unscoped} are not owner-scoped\n",
            file=sys.stderr,
        )
        sys.exit(1)
    logger.info("startup_validation", extra={"check": "owner_rules", "status": "ok"})


def create_app(*, remote: RemoteCollectionService | None = None, validate_startup: bool = True) -> FastAPI:
    """Build the application around a remote collection service."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logfire()
        instrument_httpx()

        service = remote or build_remote()
        if validate_startup and isinstance(service, PocketBaseCollectionService):
            await validate_ownership_rules()

        session = SessionContext()
        app.state.tasksync = AppState(
            remote=service,
            session=session,
            synchronizer=TaskSynchronizer(remote=service, session=session),
        )
        logger.info("tasksync started", extra={"backend": type(service).__name__})
        yield
        await app.state.tasksync.synchronizer.teardown()
        session.close()
        await service.aclose()
        logger.info("tasksync stopped")

    app = FastAPI(
        title="tasksync",
        description="Personal task lists kept in sync with a remote collection",
        version="0.1.0",
        lifespan=lifespan,
    )
    instrument_fastapi(app)
    app.add_exception_handler(TaskSyncError, handle_tasksync_error)
    app.include_router(tasks_router)

    @app.get("/health")
    async def health_check() -> JSONResponse:
        """Health check endpoint."""
        return JSONResponse(content={"status": "healthy"}, status_code=200)

    return app


app = create_app()
