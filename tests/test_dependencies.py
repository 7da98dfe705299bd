"""
Test suite for dependency injection container.

Tests ServiceCache wiring and the FastAPI dependency factories.

System role: Verification of DI container
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from solarcalc.api.deps import get_operation_record_service
from solarcalc.api.deps.dependencies import ServiceCache
from solarcalc.application.services import (
    OperationRecordService,
    SessionManagementService,
    WorkbookService,
)
from solarcalc.boundary.com.process_manager import ComProcessInfo
from solarcalc.configs.queue import QueueSettings
from solarcalc.core.session.models import OperationType


@pytest.fixture
def settings(temp_dir, workbook_settings) -> MagicMock:
    settings = MagicMock()
    settings.workbook = workbook_settings
    settings.queue = QueueSettings(_env_file=None, base_working_dir=temp_dir, record_operations=False)
    return settings


@pytest.fixture
def cache(settings):
    with patch("solarcalc.api.deps.dependencies.get_settings", return_value=settings):
        yield ServiceCache()


class TestServiceCache:
    """Test suite for lazily built shared services."""

    def test_services_are_cached(self, cache: ServiceCache) -> None:
        # Act
        first = cache.workbook_service
        second = cache.workbook_service

        # Assert
        assert isinstance(first, WorkbookService)
        assert first is second
        assert first.runner is cache.runner
        assert first.file_manager is cache.file_manager

    def test_workbook_service_sees_isolated_excel_hosts(self, cache: ServiceCache, temp_dir) -> None:
        service = cache.workbook_service
        assert service.isolated_excel_running() is False

        cache.process_manager._processes[42] = ComProcessInfo(42, "alice", "s1", "powerpoint", temp_dir)
        assert service.isolated_excel_running() is False

        cache.process_manager._processes[43] = ComProcessInfo(43, "alice", "s1", "excel", temp_dir)
        assert service.isolated_excel_running() is True

    def test_session_management_has_default_handlers(self, cache: ServiceCache) -> None:
        service = cache.session_management

        assert isinstance(service, SessionManagementService)
        assert service.has_handler(OperationType.COM, "excel_calculation")
        assert service.has_handler(OperationType.NON_COM, "file_info")
        assert service.process_manager is cache.process_manager

    def test_recorder_attached_when_enabled(self, cache: ServiceCache, settings) -> None:
        settings.queue = QueueSettings(_env_file=None, base_working_dir=settings.queue.base_working_dir)

        with patch("solarcalc.api.deps.dependencies.get_async_session_factory") as factory, patch(
            "solarcalc.api.deps.dependencies.OperationRecorder"
        ) as recorder_cls:
            service = cache.session_management

        recorder_cls.assert_called_once_with(factory.return_value)
        assert service.queue._on_transition is recorder_cls.return_value.record

    def test_clear_resets_instances(self, cache: ServiceCache) -> None:
        first = cache.runner

        cache.clear()

        assert cache.runner is not first


class TestGetOperationRecordService:
    def test_wraps_db_session(self) -> None:
        db = AsyncMock(spec=AsyncSession)

        service = get_operation_record_service(db=db)

        assert isinstance(service, OperationRecordService)
        assert service.db is db
