"""
Shared test fixtures and configuration for entire test suite.

Provides: In-memory database, temp directories, runner/file manager mocks,
    workbook settings pointing at a temp calculator tree
Dependencies: pytest, sqlalchemy, aiosqlite
System role: Test infrastructure and fixture management
"""

import asyncio
import shutil
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from solarcalc.boundary.powershell.runner import ScriptResult


@pytest.fixture
async def test_engine():
    """
    Create in-memory SQLite async engine with all tables.

    Yields:
        AsyncEngine: Engine shared by every session of the test
    """
    from sqlalchemy.ext.asyncio import create_async_engine
    from sqlalchemy.pool import StaticPool
    from solarcalc.boundary.db.base import Base
    from solarcalc.boundary.db.models.operation_model import OperationModel  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_engine):
    """Session factory bound to the in-memory engine."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_async_db(test_session_factory):
    """
    Create in-memory SQLite async database session for testing.

    Yields:
        AsyncSession: Test database session with rollback on teardown
    """
    async with test_session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def temp_dir():
    """
    Create a temporary directory for test files.

    Yields:
        Path: Path to temporary directory
    """
    temp_path = Path(tempfile.mkdtemp(prefix="solarcalc_test_"))
    yield temp_path

    # Cleanup
    if temp_path.exists():
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def workbook_settings(temp_dir):
    """
    WorkbookSettings rooted in a temp calculator tree with a default template.

    Retry waits are zeroed so retry paths run instantly.
    """
    from solarcalc.configs.workbook import WorkbookSettings

    settings = WorkbookSettings(
        calculator_root=temp_dir / "excel-calculations",
        retry_backoff_seconds=0,
        file_access_backoff_seconds=0,
        copy_retry_seconds=0,
        cleanup_settle_seconds=0,
    )
    settings.templates_dir.mkdir(parents=True)
    (settings.templates_dir / settings.default_template).write_bytes(b"template")
    return settings


@pytest.fixture
def mock_runner():
    """
    Create mock PowerShellRunner whose scripts all succeed.

    Returns:
        MagicMock: Runner with async run_* methods
    """
    runner = MagicMock()
    runner.ensure_supported = MagicMock()
    runner.run_script = AsyncMock(return_value=ScriptResult(
        success=True,
        output="RESULT:SUCCESS\n",
        error="",
        returncode=0,
    ))
    runner.run_command = AsyncMock(return_value=ScriptResult(True, "", "", 0))
    runner.run_process = AsyncMock(return_value=ScriptResult(True, "", "", 0))
    return runner


@pytest.fixture
def mock_file_manager():
    """
    Create mock FileManager that copies with shutil.

    Returns:
        MagicMock: File manager whose copies really land on disk
    """

    async def _copy(source, target, reserved=False):
        await asyncio.sleep(0)
        Path(target).parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)
        return True

    file_manager = MagicMock()
    file_manager.ensure_file_access = AsyncMock(return_value=True)
    file_manager.create_safe_file_copy = AsyncMock(side_effect=_copy)
    file_manager.force_cleanup_excel_processes = AsyncMock()
    file_manager.get_file_info = AsyncMock(return_value={"exists": True})
    return file_manager


@pytest.fixture
def mock_process_manager():
    """
    Create mock ComProcessManager.

    Returns:
        MagicMock: Process manager with async launch/kill methods
    """
    manager = MagicMock()
    manager.create_process = AsyncMock()
    manager.kill_user_processes = AsyncMock(return_value=0)
    manager.shutdown = AsyncMock()
    return manager
