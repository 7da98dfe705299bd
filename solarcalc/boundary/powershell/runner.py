"""
PowerShell runner.

Executes generated scripts and one-off commands as child processes and
captures their output. Scripts are written to a temporary ``.ps1`` file
that is removed after the run.

Dependencies: asyncio (subprocess), solarcalc.core.exceptions
System role: Single choke point for every shelled-out Office/OS call
"""

import asyncio
import logging
import sys
import tempfile
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from solarcalc.core.exceptions import PlatformNotSupportedError

logger = logging.getLogger(__name__)


@dataclass
class ScriptResult:
    """
    Outcome of one PowerShell invocation.

    Attributes:
        success: Exit code 0 and no timeout
        output: Captured stdout
        error: stderr, or a synthesized reason when stderr is empty
        returncode: Process exit code, None if killed on timeout
    """

    success: bool
    output: str = ""
    error: str | None = None
    returncode: int | None = None


class PowerShellRunner:
    """Runs PowerShell scripts and commands with a timeout."""

    def __init__(
        self,
        executable: str = "powershell",
        timeout_seconds: float = 300,
        require_windows: bool = True,
        platform: str | None = None,
    ) -> None:
        """
        Initialize runner.

        Args:
            executable: PowerShell binary (``powershell`` or ``pwsh``)
            timeout_seconds: Default per-call timeout
            require_windows: Refuse to run anywhere but Windows
            platform: Override for ``sys.platform``
        """
        self.executable = executable
        self.timeout_seconds = timeout_seconds
        self.require_windows = require_windows
        self.platform = platform or sys.platform

    def ensure_supported(self) -> None:
        """
        Raises:
            PlatformNotSupportedError: Not on Windows while required
        """
        if self.require_windows and self.platform != "win32":
            raise PlatformNotSupportedError(self.platform)

    def script_arguments(self, script_path: Path) -> list[str]:
        return [
            self.executable,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-File",
            str(script_path),
        ]

    def write_script(self, script: str, name: str, directory: Path | str | None = None) -> Path:
        """Write a script to ``<directory>/temp-<name>-<ms>-<rand>.ps1``."""
        target_dir = Path(directory) if directory else Path(tempfile.gettempdir())
        target_dir.mkdir(parents=True, exist_ok=True)
        script_path = target_dir / f"temp-{name}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}.ps1"
        # BOM so Windows PowerShell 5 reads the file as UTF-8
        script_path.write_text(script, encoding="utf-8-sig")
        return script_path

    @staticmethod
    def remove_script(script_path: Path) -> None:
        try:
            script_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to cleanup temporary script {script_path}: {e}")

    async def run_script(
        self,
        script: str,
        name: str = "script",
        directory: Path | str | None = None,
        timeout: float | None = None,
    ) -> ScriptResult:
        """
        Run a script from a temporary file.

        Args:
            script: PowerShell source
            name: Short label used in the file name and logs
            directory: Where to write the file (system temp if None)
            timeout: Override the default timeout

        Returns:
            ScriptResult: Captured outcome

        Raises:
            PlatformNotSupportedError: Not on Windows while required
        """
        self.ensure_supported()
        script_path = self.write_script(script, name, directory)
        logger.debug(f"Running PowerShell script {script_path}")
        try:
            return await self.run_process(self.script_arguments(script_path), timeout=timeout, label=name)
        finally:
            self.remove_script(script_path)

    async def run_command(self, command: str, timeout: float | None = None) -> ScriptResult:
        """Run an inline ``-Command`` string."""
        return await self.run_process(
            [self.executable, "-NoProfile", "-NonInteractive", "-Command", command],
            timeout=timeout,
            label="command",
        )

    async def run_process(
        self,
        args: list[str],
        timeout: float | None = None,
        label: str | None = None,
    ) -> ScriptResult:
        """
        Run any executable (e.g. ``taskkill``) and capture its output.

        A missing executable or a timeout yields an unsuccessful result
        rather than an exception.
        """
        self.ensure_supported()
        label = label or args[0]
        timeout = self.timeout_seconds if timeout is None else timeout
        start_time = time.time()

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to launch {args[0]}: {e}")
            return ScriptResult(success=False, error=str(e))

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.error(f"{label} timed out after {timeout}s")
            return ScriptResult(success=False, error=f"Timed out after {timeout}s")

        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        error_output = stderr.decode("utf-8", errors="replace").strip() if stderr else ""
        success = process.returncode == 0
        elapsed_ms = round((time.time() - start_time) * 1000, 2)

        if success:
            logger.info(f"{label} completed in {elapsed_ms}ms")
        else:
            logger.error(
                f"{label} failed with exit code {process.returncode} in {elapsed_ms}ms: "
                f"{error_output[:500]}"
            )

        return ScriptResult(
            success=success,
            output=output,
            error=error_output or (None if success else f"Exit code {process.returncode}"),
            returncode=process.returncode,
        )

    async def start_script(
        self,
        script: str,
        name: str,
        directory: Path | str | None = None,
    ) -> tuple[asyncio.subprocess.Process, Path]:
        """
        Launch a long-lived script without waiting for it.

        Returns:
            tuple: (process with piped stdout, script path to remove later)
        """
        self.ensure_supported()
        script_path = self.write_script(script, name, directory)
        process = await asyncio.create_subprocess_exec(
            *self.script_arguments(script_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        return process, script_path
