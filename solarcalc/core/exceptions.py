"""
Exception hierarchy for the solar calculator backend.

Provides layered exception structure for domain-specific errors.
All exceptions include context for observability and debugging.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

from typing import Any


class SolarCalcException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(SolarCalcException):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            details: Additional context
        """
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class SessionNotFoundError(SolarCalcException):
    """Raised when a user has no session."""

    def __init__(self, user_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["user_id"] = user_id
        super().__init__(f"No session for user: {user_id}", details)


class SessionExpiredError(SolarCalcException):
    """Raised when a user's session is missing or has timed out."""

    def __init__(self, user_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["user_id"] = user_id
        super().__init__(f"Session not found or expired for user {user_id}", details)


class UnknownOperationError(SolarCalcException):
    """Raised when no handler is registered for an operation."""

    def __init__(
        self,
        operation_type: str,
        operation: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details.update({"operation_type": operation_type, "operation": operation})
        super().__init__(f"Unknown {operation_type} operation: {operation}", details)


class QueueClosedError(SolarCalcException):
    """Raised for requests still pending when the queue shuts down."""

    def __init__(self, request_id: str | None = None) -> None:
        details = {"request_id": request_id} if request_id else {}
        super().__init__("Operation queue is closed", details)


class AutomationError(SolarCalcException):
    """Base exception for spreadsheet/PowerShell automation failures."""

    pass


class PlatformNotSupportedError(AutomationError):
    """Raised when Office automation is attempted off Windows."""

    def __init__(self, platform: str) -> None:
        super().__init__(
            "Excel automation requires Windows platform",
            {"platform": platform},
        )


class ScriptExecutionError(AutomationError):
    """Raised when a PowerShell script exits unsuccessfully."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize script execution error.

        Args:
            message: Error message
            returncode: Process exit code, None on timeout
            stderr: Captured standard error (truncated)
            details: Additional context
        """
        details = details or {}
        details["returncode"] = returncode
        if stderr:
            details["stderr"] = stderr[:2000]
        super().__init__(message, details)


class WorkbookNotFoundError(AutomationError):
    """Raised when a template or opportunity workbook does not exist."""

    def __init__(self, path: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["path"] = path
        super().__init__(f"Workbook not found: {path}", details)


class WorkbookAccessError(AutomationError):
    """Raised when a workbook stays locked or cannot be copied."""

    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(message or f"Workbook not accessible: {path}", {"path": path})


class ProcessLaunchError(AutomationError):
    """Raised when an isolated Office process does not report its PID."""

    def __init__(self, application: str, reason: str) -> None:
        super().__init__(
            f"Failed to start {application} process: {reason}",
            {"application": application},
        )
