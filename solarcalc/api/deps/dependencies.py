"""
Dependency injection container.

Factory functions for FastAPI dependencies. Long-lived automation services
(runner, file manager, workbook service, session management) are built once
from settings and shared by every request.

Dependencies: solarcalc.configs, solarcalc.application, solarcalc.boundary
System role: DI container for service injection
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from solarcalc.application.services import (
    OperationRecorder,
    OperationRecordService,
    SessionManagementService,
    WorkbookService,
    build_default_handlers,
)
from solarcalc.boundary.com import ComProcessManager
from solarcalc.boundary.db import get_async_db, get_async_session_factory
from solarcalc.boundary.files import FileManager
from solarcalc.boundary.powershell import PowerShellRunner
from solarcalc.configs import Settings, get_settings


class ServiceCache:
    """Container for cached service instances."""

    def __init__(self):
        self._runner = None
        self._file_manager = None
        self._workbook_service = None
        self._process_manager = None
        self._session_management = None

    @property
    def runner(self) -> PowerShellRunner:
        """Get cached PowerShell runner."""
        if self._runner is None:
            workbook = get_settings().workbook
            self._runner = PowerShellRunner(
                executable=workbook.powershell_executable,
                timeout_seconds=workbook.script_timeout_seconds,
                require_windows=workbook.require_windows,
            )
        return self._runner

    @property
    def file_manager(self) -> FileManager:
        """Get cached file manager."""
        if self._file_manager is None:
            workbook = get_settings().workbook
            self._file_manager = FileManager(
                self.runner,
                access_retries=workbook.file_access_retries,
                access_backoff_seconds=workbook.file_access_backoff_seconds,
                copy_retry_seconds=workbook.copy_retry_seconds,
                cleanup_settle_seconds=workbook.cleanup_settle_seconds,
            )
        return self._file_manager

    @property
    def workbook_service(self) -> WorkbookService:
        """Get cached workbook service."""
        if self._workbook_service is None:
            self._workbook_service = WorkbookService(
                get_settings().workbook,
                self.runner,
                self.file_manager,
                isolated_excel_running=self._isolated_excel_running,
            )
        return self._workbook_service

    def _isolated_excel_running(self) -> bool:
        if self._process_manager is None:
            return False
        return any(info.application == "excel" for info in self._process_manager.get_all_processes())

    @property
    def process_manager(self) -> ComProcessManager:
        """Get cached COM process manager."""
        if self._process_manager is None:
            self._process_manager = ComProcessManager(
                self.runner,
                start_timeout_seconds=get_settings().workbook.process_start_timeout_seconds,
            )
        return self._process_manager

    @property
    def session_management(self) -> SessionManagementService:
        """Get cached session management service with the default handlers registered."""
        if self._session_management is None:
            settings = get_settings()
            recorder = None
            if settings.queue.record_operations:
                recorder = OperationRecorder(get_async_session_factory())
            service = SessionManagementService(
                settings.queue,
                self.process_manager,
                recorder=recorder,
            )
            service.register_handlers(build_default_handlers(self.workbook_service, self.file_manager))
            self._session_management = service
        return self._session_management

    def clear(self) -> None:
        """Clear all cached instances."""
        self._runner = None
        self._file_manager = None
        self._workbook_service = None
        self._process_manager = None
        self._session_management = None


# Global service cache
_service_cache = ServiceCache()


def get_service_cache() -> ServiceCache:
    """Get service cache singleton."""
    return _service_cache


@lru_cache
def get_settings_dependency() -> Settings:
    """Get settings singleton."""
    return get_settings()


def get_session_management_service() -> SessionManagementService:
    """
    Get the shared session management service.

    Returns:
        SessionManagementService: Process-wide instance owning the queue
    """
    return get_service_cache().session_management


def get_workbook_service() -> WorkbookService:
    """Get the shared workbook service."""
    return get_service_cache().workbook_service


def get_operation_record_service(db: AsyncSession = Depends(get_async_db)) -> OperationRecordService:
    """
    Get operation record service instance.

    Args:
        db: Async database session (injected via Depends)

    Returns:
        OperationRecordService: Operation history queries
    """
    return OperationRecordService(db=db)
