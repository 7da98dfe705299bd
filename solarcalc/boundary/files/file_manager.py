"""
Workbook file manager.

Excel keeps workbooks locked long after automation finishes, so every file
touch is guarded: access checks and copies retry with backoff, and a
three-step Excel cleanup (graceful close, force kill, COM/temp-file
cleanup) frees locks before a calculation attempt.

Dependencies: tenacity, asyncio, shutil, solarcalc.boundary.powershell
System role: Safe file handling around Excel COM automation
"""

import asyncio
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)

from solarcalc.boundary.powershell.runner import PowerShellRunner
from solarcalc.core.exceptions import WorkbookAccessError
from solarcalc.core.workbook.scripts import (
    CLEANUP_COM_OBJECTS,
    FORCE_KILL_EXCEL,
    GRACEFUL_CLOSE_EXCEL,
)

logger = logging.getLogger(__name__)

COPY_ATTEMPTS = 3


def _check_access(path: Path) -> None:
    if not os.access(path, os.R_OK):
        raise WorkbookAccessError(str(path), f"File not readable: {path}")
    if not os.access(path, os.W_OK):
        raise WorkbookAccessError(str(path), f"File not writable: {path}")
    try:
        # Fails while Excel holds the workbook open on Windows
        with open(path, "r+b"):
            pass
    except OSError as e:
        raise WorkbookAccessError(str(path), f"File locked: {e}") from e


def _copy_and_verify(source: Path, target: Path) -> None:
    shutil.copy2(source, target)
    source_size = source.stat().st_size
    target_size = target.stat().st_size
    if source_size != target_size:
        raise WorkbookAccessError(
            str(target),
            f"Copy size mismatch: source={source_size} target={target_size}",
        )


class FileManager:
    """Retry-guarded file access, copies and Excel lock cleanup."""

    def __init__(
        self,
        runner: PowerShellRunner,
        access_retries: int = 3,
        access_backoff_seconds: float = 1.0,
        copy_retry_seconds: float = 1.0,
        cleanup_settle_seconds: float = 3.0,
    ) -> None:
        """
        Initialize file manager.

        Args:
            runner: PowerShell runner for the Excel cleanup commands
            access_retries: Attempts in ensure_file_access
            access_backoff_seconds: Access waits are 2^attempt times this
            copy_retry_seconds: Copy waits grow by this much per attempt
            cleanup_settle_seconds: Pause after the Excel cleanup
        """
        self.runner = runner
        self.access_retries = access_retries
        self.access_backoff_seconds = access_backoff_seconds
        self.copy_retry_seconds = copy_retry_seconds
        self.cleanup_settle_seconds = cleanup_settle_seconds

    async def ensure_file_access(self, path: Path | str, max_retries: int | None = None) -> bool:
        """
        Check a file exists, is readable and writable, and can be opened for update.

        Locked files are retried with exponential backoff (2s, 4s, ... at
        the default multiplier). A missing file fails immediately.

        Returns:
            bool: True once the file is accessible
        """
        path = Path(path)
        if not path.is_file():
            logger.error(f"File does not exist: {path}")
            return False

        attempts = max_retries or self.access_retries
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=2 * self.access_backoff_seconds, max=60),
                retry=retry_if_exception_type(WorkbookAccessError),
                before_sleep=lambda state: logger.warning(
                    f"File access attempt {state.attempt_number}/{attempts} failed for {path}: "
                    f"{state.outcome.exception().message}"
                ),
                reraise=True,
            ):
                with attempt:
                    await asyncio.to_thread(_check_access, path)
        except WorkbookAccessError as e:
            logger.error(f"File not accessible after {attempts} attempts: {e.message}")
            return False
        return True

    async def create_safe_file_copy(
        self,
        source: Path | str,
        target: Path | str,
        reserved: bool = False,
    ) -> bool:
        """
        Copy a workbook, replacing any existing target, and verify the size.

        Args:
            source: Template or workbook to copy
            target: Destination path
            reserved: Target is a placeholder the caller already claimed; it
                is written over in place rather than removed first

        Returns:
            bool: True if the verified copy exists
        """
        source = Path(source)
        target = Path(target)

        if not await self.ensure_file_access(source):
            logger.error(f"Source file not accessible: {source}")
            return False

        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists() and not reserved:
            try:
                target.unlink()
            except OSError as e:
                logger.warning(f"Could not remove existing target {target}: {e}")

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(COPY_ATTEMPTS),
                wait=wait_incrementing(start=self.copy_retry_seconds, increment=self.copy_retry_seconds),
                retry=retry_if_exception_type((OSError, WorkbookAccessError)),
                before_sleep=lambda state: logger.warning(
                    f"Copy attempt {state.attempt_number}/{COPY_ATTEMPTS} failed: "
                    f"{state.outcome.exception()}"
                ),
            ):
                with attempt:
                    await asyncio.to_thread(_copy_and_verify, source, target)
        except RetryError as e:
            logger.error(f"Failed to copy {source} to {target}: {e.last_attempt.exception()}")
            return False

        logger.info(f"Copied {source.name} to {target}")
        return True

    async def force_cleanup_excel_processes(self, kill_processes: bool = True) -> None:
        """
        Release Excel's hold on workbooks.

        Graceful close, then force kill, then COM garbage collection and
        temp lock-file removal. A failing step is logged and the next one
        still runs.

        Args:
            kill_processes: Run the close and kill steps. Without them only
                the COM and lock-file cleanup runs, leaving every Excel
                process alive.
        """
        steps = [("COM cleanup", CLEANUP_COM_OBJECTS)]
        if kill_processes:
            steps[:0] = [
                ("graceful Excel termination", GRACEFUL_CLOSE_EXCEL),
                ("force kill", FORCE_KILL_EXCEL),
            ]
        else:
            logger.info("Excel cleanup: leaving Excel processes running")
        for label, command in steps:
            result = await self.runner.run_command(command)
            if result.success:
                logger.info(f"Excel cleanup: {label} completed")
            else:
                logger.warning(f"Excel cleanup: {label} failed: {result.error}")

        if self.cleanup_settle_seconds:
            await asyncio.sleep(self.cleanup_settle_seconds)

    async def get_file_info(self, path: Path | str) -> dict[str, Any]:
        """
        Describe a file for diagnostics.

        Returns:
            dict: exists, path and, when present, size, timestamps and access flags
        """
        path = Path(path)
        if not path.exists():
            return {"exists": False, "path": str(path)}

        stat = await asyncio.to_thread(path.stat)
        return {
            "exists": True,
            "path": str(path),
            "size": stat.st_size,
            "created": datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc).isoformat(),
            "modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            "accessed": datetime.fromtimestamp(stat.st_atime, tz=timezone.utc).isoformat(),
            "readable": os.access(path, os.R_OK),
            "writable": os.access(path, os.W_OK),
        }
