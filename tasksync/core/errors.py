"""Error kinds and user-facing error classification."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Task errors
    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_INVALID_RECURRENCE = "ERR_INVALID_RECURRENCE"
    ERR_TASK_NOT_FOUND = "ERR_TASK_NOT_FOUND"
    ERR_TASK_ALREADY_COMPLETED = "ERR_TASK_ALREADY_COMPLETED"

    # User errors
    ERR_USER_NOT_FOUND = "ERR_USER_NOT_FOUND"
    ERR_USER_ALREADY_EXISTS = "ERR_USER_ALREADY_EXISTS"
    ERR_USER_NOT_APPROVED = "ERR_USER_NOT_APPROVED"
    ERR_AUTHENTICATION_FAILED = "ERR_AUTHENTICATION_FAILED"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"

    # Infrastructure errors
    ERR_PERSISTENCE = "ERR_PERSISTENCE"
    ERR_NETWORK_ERROR = "ERR_NETWORK_ERROR"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class TaskSyncError(Exception):
    """Base class for all tasksync errors."""

    code: str = ErrorCode.ERR_UNKNOWN

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(TaskSyncError):
    """Malformed input: missing required field, negative points, bad transition."""

    code = ErrorCode.ERR_VALIDATION


class InvalidRecurrenceError(ValidationError):
    """Recurrence value is not one of once/daily/weekly/monthly, or does not recur."""

    code = ErrorCode.ERR_INVALID_RECURRENCE


class NotFoundError(TaskSyncError):
    """Operation on a task or user id that does not exist."""

    code = ErrorCode.ERR_TASK_NOT_FOUND


class AuthError(TaskSyncError):
    """Credential failure, duplicate registration, or unauthorized action."""

    code = ErrorCode.ERR_AUTHENTICATION_FAILED

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        already_registered: bool = False,
        not_approved: bool = False,
    ) -> None:
        if code is None and already_registered:
            code = ErrorCode.ERR_USER_ALREADY_EXISTS
        if code is None and not_approved:
            code = ErrorCode.ERR_USER_NOT_APPROVED
        super().__init__(message, code=code)
        self.already_registered = already_registered
        self.not_approved = not_approved


class PersistenceError(TaskSyncError):
    """Storage read or write failure."""

    code = ErrorCode.ERR_PERSISTENCE


class NetworkError(TaskSyncError):
    """Remote call failure or timeout."""

    code = ErrorCode.ERR_NETWORK_ERROR


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


_ERROR_PATTERNS: dict[Literal["auth", "network"], dict[str, list[str] | set[str]]] = {
    "auth": {
        "phrases": [
            "invalid login credentials",
            "authentication failed",
            "unauthorized",
            "invalid token",
            "jwt expired",
            "401",
        ],
        "exception_types": {"PermissionError"},
    },
    "network": {
        "phrases": [
            "connection",
            "timeout",
            "timed out",
            "network",
            "503",
            "502",
            "504",
            "unreachable",
        ],
        "exception_types": {"ConnectionError", "TimeoutError", "ConnectError", "ReadTimeout"},
    },
}


def _match_error_pattern(*, error_str: str, exception_type: str, pattern_type: Literal["auth", "network"]) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def _classify_known(exception: TaskSyncError) -> ErrorResponse | None:  # noqa: PLR0911
    """Map a tasksync error to its response, or None if its code is not special-cased."""
    if isinstance(exception, InvalidRecurrenceError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_RECURRENCE,
            message="Invalid recurrence.",
            suggestion="Use one of 'once', 'daily', 'weekly' or 'monthly'.",
            severity=ErrorSeverity.LOW,
        )

    if exception.code == ErrorCode.ERR_TASK_ALREADY_COMPLETED:
        return ErrorResponse(
            code=ErrorCode.ERR_TASK_ALREADY_COMPLETED,
            message="This task has already been completed.",
            suggestion="Refresh your task list to see the next occurrence.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, ValidationError):
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion="Check the task details and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, NotFoundError):
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion="It may have been deleted. Refresh and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, AuthError):
        if exception.already_registered:
            return ErrorResponse(
                code=ErrorCode.ERR_USER_ALREADY_EXISTS,
                message="This email is already registered.",
                suggestion="Sign in instead, or reset your password.",
                severity=ErrorSeverity.LOW,
            )
        if exception.not_approved:
            return ErrorResponse(
                code=ErrorCode.ERR_USER_NOT_APPROVED,
                message="Your account is pending admin approval.",
                suggestion="You will receive an email once an administrator approves your account.",
                severity=ErrorSeverity.LOW,
            )
        if exception.code == ErrorCode.ERR_PERMISSION_DENIED:
            return ErrorResponse(
                code=ErrorCode.ERR_PERMISSION_DENIED,
                message="You don't have permission for this action.",
                suggestion="Contact an administrator if you think this is an error.",
                severity=ErrorSeverity.MEDIUM,
            )
        return ErrorResponse(
            code=exception.code,
            message=exception.message,
            suggestion="Check your email and password and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, PersistenceError):
        return ErrorResponse(
            code=ErrorCode.ERR_PERSISTENCE,
            message="Your changes could not be saved.",
            suggestion="They are kept for this session. Try again before closing the app.",
            severity=ErrorSeverity.HIGH,
        )

    if isinstance(exception, NetworkError):
        return ErrorResponse(
            code=ErrorCode.ERR_NETWORK_ERROR,
            message="Network error occurred.",
            suggestion="Please check your connection and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    return None


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, TaskSyncError):
        known = _classify_known(exception)
        if known is not None:
            return known

    error_str = str(exception).lower()
    exception_type = type(exception).__name__

    if "already registered" in error_str or "already exists" in error_str:
        return ErrorResponse(
            code=ErrorCode.ERR_USER_ALREADY_EXISTS,
            message="This email is already registered.",
            suggestion="Sign in instead, or reset your password.",
            severity=ErrorSeverity.LOW,
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="auth"):
        return ErrorResponse(
            code=ErrorCode.ERR_AUTHENTICATION_FAILED,
            message="Authentication failed.",
            suggestion="Check your email and password and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="network"):
        return ErrorResponse(
            code=ErrorCode.ERR_NETWORK_ERROR,
            message="Network error occurred.",
            suggestion="Please check your connection and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
