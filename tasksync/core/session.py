"""Explicitly scoped authentication context for the signed-in user."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from tasksync.core.errors import AuthError


logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Identity and credentials of the signed-in user.

    Opened after successful authentication and closed on sign-out. Services
    receive it explicitly instead of reading a process-wide current user.
    """

    identity: str | None = None
    token: str | None = None
    email: str | None = None
    opened_at: datetime | None = field(default=None, repr=False)

    @property
    def is_authenticated(self) -> bool:
        """True while an identity is present."""
        return bool(self.identity)

    def open(self, *, identity: str, token: str | None = None, email: str | None = None) -> None:
        """Bind the session to an authenticated identity."""
        if not identity:
            msg = "Cannot open a session without an identity"
            raise AuthError(msg)
        self.identity = identity
        self.token = token
        self.email = email
        self.opened_at = datetime.now(UTC)
        logger.info("Session opened", extra={"user_id": identity})

    def close(self) -> None:
        """Drop the identity and credentials (sign-out)."""
        if self.identity:
            logger.info("Session closed", extra={"user_id": self.identity})
        self.identity = None
        self.token = None
        self.email = None
        self.opened_at = None

    def require_identity(self) -> str:
        """Return the identity or raise AuthError when signed out."""
        if not self.identity:
            msg = "You must be logged in to manage tasks"
            raise AuthError(msg)
        return self.identity
