"""Service orchestrators."""

from .operation_handlers import build_default_handlers
from .operation_record_service import OperationRecorder, OperationRecordService
from .session_management_service import SessionManagementService
from .workbook_service import WorkbookService

__all__ = [
    "OperationRecorder",
    "OperationRecordService",
    "SessionManagementService",
    "WorkbookService",
    "build_default_handlers",
]
