"""
Domain exception to HTTP error mapping.

Dependencies: fastapi, solarcalc.core.exceptions
System role: Shared error translation for routers
"""

import logging

from fastapi import HTTPException

from solarcalc.core.exceptions import (
    PlatformNotSupportedError,
    QueueClosedError,
    SessionExpiredError,
    SessionNotFoundError,
    UnknownOperationError,
    ValidationError,
    WorkbookNotFoundError,
)
from solarcalc.observability.log_utils import log_exception_with_context

logger = logging.getLogger(__name__)

_STATUS_CODES: tuple[tuple[type[Exception], int], ...] = (
    (ValidationError, 400),
    (UnknownOperationError, 404),
    (SessionExpiredError, 404),
    (SessionNotFoundError, 404),
    (WorkbookNotFoundError, 404),
    (QueueClosedError, 503),
    (PlatformNotSupportedError, 503),
)


def status_code_for(exc: Exception) -> int:
    """HTTP status for a domain exception, 500 when unmapped."""
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


def to_http_exception(exc: Exception, action: str) -> HTTPException:
    """
    Build the HTTPException for a failure in a router.

    Unmapped errors are logged with their traceback and reported as
    ``<action> failed: <message>``.
    """
    status_code = status_code_for(exc)
    if status_code == 500:
        log_exception_with_context(logger, f"{action} failed", exc)
        return HTTPException(status_code=500, detail=f"{action} failed: {exc}")
    return HTTPException(status_code=status_code, detail=getattr(exc, "message", str(exc)))
