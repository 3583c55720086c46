"""Error taxonomy and user-facing error classification."""

from enum import Enum

from pydantic import BaseModel


class TaskSyncError(Exception):
    """Base class for all tasksync errors."""


class ValidationError(TaskSyncError):
    """Input rejected before any request was dispatched."""


class AuthError(TaskSyncError):
    """No authenticated identity, or the remote service rejected the credentials."""


class RemoteError(TaskSyncError):
    """A request to the remote collection service failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RecordNotFoundError(RemoteError):
    """The record does not exist or is not visible to the caller."""


class ChannelError(TaskSyncError):
    """The change subscription dropped."""


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_AUTHENTICATION_REQUIRED = "ERR_AUTHENTICATION_REQUIRED"
    ERR_TASK_NOT_FOUND = "ERR_TASK_NOT_FOUND"
    ERR_REMOTE_UNAVAILABLE = "ERR_REMOTE_UNAVAILABLE"
    ERR_CHANNEL_DROPPED = "ERR_CHANNEL_DROPPED"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised by a command or the synchronizer

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, ValidationError):
        return ErrorResponse(
            code=ErrorCode.ERR_VALIDATION,
            message=str(exception) or "The task could not be saved.",
            suggestion="Fix the highlighted field and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, AuthError):
        return ErrorResponse(
            code=ErrorCode.ERR_AUTHENTICATION_REQUIRED,
            message="You must be signed in to manage tasks.",
            suggestion="Sign in and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, RecordNotFoundError):
        return ErrorResponse(
            code=ErrorCode.ERR_TASK_NOT_FOUND,
            message="That task no longer exists.",
            suggestion="The list refreshes automatically; pick another task.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, RemoteError):
        return ErrorResponse(
            code=ErrorCode.ERR_REMOTE_UNAVAILABLE,
            message="The task service could not complete the request.",
            suggestion="Check your connection and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, ChannelError):
        return ErrorResponse(
            code=ErrorCode.ERR_CHANNEL_DROPPED,
            message="Live updates are unavailable.",
            suggestion="The list may be out of date. Sign in again to reload it.",
            severity=ErrorSeverity.HIGH,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
