"""Session lifecycle: open on successful authentication, close on sign-out."""

import logging

from tasksync.core.errors import AuthError
from tasksync.core.logging import span
from tasksync.core.pocketbase_service import PocketBaseCollectionService
from tasksync.core.remote import RemoteCollectionService
from tasksync.core.session import SessionContext
from tasksync.services.sync_service import TaskSynchronizer


logger = logging.getLogger(__name__)


async def sign_in(
    *,
    remote: RemoteCollectionService,
    session: SessionContext,
    synchronizer: TaskSynchronizer,
    email: str,
    password: str,
) -> SessionContext:
    """Authenticate, open the session and start synchronizing the user's tasks.

    The embedded SQLite backend has no user store; it runs in local
    single-user mode and trusts the email as the owner identity.

    Raises:
        AuthError: If the credentials are rejected
    """
    with span("auth_service.sign_in"):
        if session.is_authenticated:
            await sign_out(remote=remote, session=session, synchronizer=synchronizer)

        if not email.strip():
            msg = "Email is required"
            raise AuthError(msg)

        if isinstance(remote, PocketBaseCollectionService):
            await remote.auth_with_password(email=email, password=password, session=session)
        else:
            session.open(identity=email.strip().lower(), email=email.strip())

        if synchronizer.is_active:
            # An overlapping sign-in started syncing after our session check
            await synchronizer.teardown()
        await synchronizer.initialize()
        return session


async def sign_out(
    *,
    remote: RemoteCollectionService,
    session: SessionContext,
    synchronizer: TaskSynchronizer,
) -> None:
    """Stop synchronizing and drop the session credentials."""
    with span("auth_service.sign_out"):
        await synchronizer.teardown()
        if isinstance(remote, PocketBaseCollectionService):
            remote.set_token(None)
        session.close()
