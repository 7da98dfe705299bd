"""
COM process manager.

Starts one long-lived PowerShell host per user and Office application,
which owns an Excel or PowerPoint COM instance and keeps it alive until a
stop file appears in the session folder. Tracked processes are killed by
PID with ``taskkill`` and untracked once their host exits.

Dependencies: asyncio, solarcalc.boundary.powershell, solarcalc.core.workbook.scripts
System role: Per-user Office process isolation
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from solarcalc.boundary.powershell.runner import PowerShellRunner
from solarcalc.core.exceptions import ProcessLaunchError
from solarcalc.core.workbook.output_parser import parse_process_id
from solarcalc.core.workbook.scripts import (
    SUPPORTED_APPLICATIONS,
    isolated_process_script,
    stop_file_name,
)

logger = logging.getLogger(__name__)


@dataclass
class ComProcessInfo:
    """A tracked Office host process."""

    process_id: int
    user_id: str
    session_id: str
    application: str
    working_directory: Path
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "process_id": self.process_id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "application": self.application,
            "working_directory": str(self.working_directory),
            "start_time": self.start_time.isoformat(),
        }


class ComProcessManager:
    """Launches, tracks and kills isolated Office processes."""

    def __init__(self, runner: PowerShellRunner, start_timeout_seconds: float = 30) -> None:
        """
        Initialize manager.

        Args:
            runner: PowerShell runner used for launches and taskkill
            start_timeout_seconds: Max wait for the ``Process ID`` line
        """
        self.runner = runner
        self.start_timeout_seconds = start_timeout_seconds
        self._processes: dict[int, ComProcessInfo] = {}
        self._handles: dict[int, asyncio.subprocess.Process] = {}
        self._drains: set[asyncio.Task] = set()

    async def create_excel_process(
        self,
        user_id: str,
        session_id: str,
        working_directory: Path,
    ) -> ComProcessInfo:
        """Start an isolated Excel instance, replacing the user's previous one."""
        return await self._create_process("excel", user_id, session_id, working_directory)

    async def create_powerpoint_process(
        self,
        user_id: str,
        session_id: str,
        working_directory: Path,
    ) -> ComProcessInfo:
        """Start an isolated PowerPoint instance, replacing the user's previous one."""
        return await self._create_process("powerpoint", user_id, session_id, working_directory)

    async def create_process(
        self,
        application: str,
        user_id: str,
        session_id: str,
        working_directory: Path,
    ) -> ComProcessInfo:
        if application not in SUPPORTED_APPLICATIONS:
            raise ValueError(f"Unsupported application: {application}")
        return await self._create_process(application, user_id, session_id, working_directory)

    async def _create_process(
        self,
        application: str,
        user_id: str,
        session_id: str,
        working_directory: Path,
    ) -> ComProcessInfo:
        await self.kill_user_processes(user_id, application)

        working_directory = Path(working_directory)
        script = isolated_process_script(application, working_directory)
        process, script_path = await self.runner.start_script(
            script,
            f"{application}-process",
            working_directory / "temp",
        )

        try:
            pid = await asyncio.wait_for(
                self._read_process_id(process),
                timeout=self.start_timeout_seconds,
            )
        except asyncio.TimeoutError:
            await self._terminate(process)
            raise ProcessLaunchError(application, "timed out waiting for process ID")
        finally:
            self.runner.remove_script(script_path)

        if pid is None:
            await process.wait()
            raise ProcessLaunchError(application, "process exited before reporting its ID")

        info = ComProcessInfo(
            process_id=pid,
            user_id=user_id,
            session_id=session_id,
            application=application,
            working_directory=working_directory,
        )
        self._processes[pid] = info
        self._handles[pid] = process

        drain = asyncio.create_task(self._watch(pid, process), name=f"{application}-{pid}-stdout")
        self._drains.add(drain)
        drain.add_done_callback(self._drains.discard)

        logger.info(f"Started {application} process {pid} for user {user_id}")
        return info

    @staticmethod
    async def _read_process_id(process: asyncio.subprocess.Process) -> int | None:
        while True:
            line = await process.stdout.readline()
            if not line:
                return None
            pid = parse_process_id(line.decode("utf-8", errors="replace"))
            if pid is not None:
                return pid

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()

    async def _watch(self, pid: int, process: asyncio.subprocess.Process) -> None:
        """Drain the host's output and stop tracking it once it exits."""
        # Keep the pipe from filling up while the host runs
        while await process.stdout.readline():
            pass
        returncode = await process.wait()

        if self._handles.get(pid) is not process:
            return
        del self._handles[pid]
        info = self._processes.pop(pid, None)
        if info:
            logger.info(
                f"{info.application} process {pid} for user {info.user_id} exited with code {returncode}"
            )

    async def kill_process(self, process_id: int) -> bool:
        """
        Force-kill a process by PID and stop tracking it.

        Returns:
            bool: True if taskkill succeeded
        """
        result = await self.runner.run_process(["taskkill", "/PID", str(process_id), "/F"], label="taskkill")
        info = self._processes.pop(process_id, None)
        self._handles.pop(process_id, None)

        if result.success:
            if info:
                logger.info(f"Killed {info.application} process {process_id} for user {info.user_id}")
        else:
            logger.warning(f"Failed to kill process {process_id}: {result.error}")
        return result.success

    async def kill_user_processes(self, user_id: str, application: str | None = None) -> int:
        """
        Kill every tracked process of a user, optionally one application only.

        Returns:
            int: Number of processes successfully killed
        """
        targets = [
            info.process_id
            for info in self._processes.values()
            if info.user_id == user_id and (application is None or info.application == application)
        ]
        killed = 0
        for pid in targets:
            if await self.kill_process(pid):
                killed += 1
        return killed

    def stop_user_process(self, user_id: str, application: str) -> int:
        """
        Ask the user's host process to exit on its own by writing its stop file.

        The process stays tracked until the host actually exits.

        Returns:
            int: Number of stop files written
        """
        written = 0
        for info in self.get_user_processes(user_id):
            if info.application != application:
                continue
            stop_file = info.working_directory / stop_file_name(application)
            try:
                stop_file.write_text("stop", encoding="utf-8")
                written += 1
            except OSError as e:
                logger.warning(f"Could not write stop file {stop_file}: {e}")
        return written

    def get_process_info(self, process_id: int) -> ComProcessInfo | None:
        return self._processes.get(process_id)

    def get_user_processes(self, user_id: str) -> list[ComProcessInfo]:
        return [info for info in self._processes.values() if info.user_id == user_id]

    def get_all_processes(self) -> list[ComProcessInfo]:
        return list(self._processes.values())

    async def shutdown(self) -> None:
        """Kill every tracked process."""
        for pid in list(self._processes):
            await self.kill_process(pid)
