"""
Workbook service orchestrator.

Coordinates template copies, versioned opportunity files, cell mappings
and PowerShell script runs for the calculator workbooks. Methods raise
AutomationError subclasses on failure and return plain dicts on success.

Dependencies: tenacity, asyncio, solarcalc.boundary.powershell, solarcalc.boundary.files,
    solarcalc.core.workbook
System role: Excel calculator automation orchestration
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Mapping

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from solarcalc.boundary.files.file_manager import FileManager
from solarcalc.boundary.powershell.runner import PowerShellRunner
from solarcalc.configs.workbook import WorkbookSettings
from solarcalc.core.exceptions import (
    ScriptExecutionError,
    ValidationError,
    WorkbookAccessError,
    WorkbookNotFoundError,
)
from solarcalc.core.session.models import UserSession
from solarcalc.core.workbook import scripts
from solarcalc.core.workbook.cell_mapping import (
    CalculatorType,
    input_field_catalogue,
    is_valid_cell_reference,
    map_inputs,
    pricing_cells,
)
from solarcalc.core.workbook.output_parser import (
    CalculationOutput,
    parse_calculation_output,
    parse_enabled_fields,
    parse_json_result,
)
from solarcalc.core.workbook.versioning import (
    current_or_first_version_path,
    latest_version_path,
    reserve_next_version_path,
)
from solarcalc.models.workbook import CalculationRequest, CustomerDetails

logger = logging.getLogger(__name__)


class ExcelGate:
    """
    Shared/exclusive gate around Excel use within one process.

    Script runs hold it shared and may overlap. The cleanup that closes and
    kills Excel holds it alone, so it never lands in the middle of a run.
    A waiting cleanup holds back new runs until it has had its turn.
    """

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._running = 0
        self._cleaning = False
        self._cleanups_waiting = 0

    @property
    def running(self) -> int:
        return self._running

    @asynccontextmanager
    async def shared(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(lambda: not self._cleaning and not self._cleanups_waiting)
            self._running += 1
        try:
            yield
        finally:
            async with self._condition:
                self._running -= 1
                self._condition.notify_all()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._condition:
            self._cleanups_waiting += 1
            try:
                await self._condition.wait_for(lambda: not self._cleaning and self._running == 0)
            finally:
                self._cleanups_waiting -= 1
                self._condition.notify_all()
            self._cleaning = True
        try:
            yield
        finally:
            async with self._condition:
                self._cleaning = False
                self._condition.notify_all()


class WorkbookService:
    """
    Calculator workbook orchestrator.

    Owns the folder layout (templates, opportunities, EPVS opportunities)
    and drives every workbook change through a generated script.
    """

    def __init__(
        self,
        settings: WorkbookSettings,
        runner: PowerShellRunner,
        file_manager: FileManager,
        isolated_excel_running: Callable[[], bool] | None = None,
    ) -> None:
        """
        Initialize workbook service.

        Args:
            settings: Folder layout, password and retry policy
            runner: Executes generated scripts
            file_manager: Lock-aware copies and Excel cleanup
            isolated_excel_running: Reports whether per-user Excel hosts are
                alive; while it does, cleanup leaves Excel processes running
        """
        self.settings = settings
        self.runner = runner
        self.file_manager = file_manager
        self.isolated_excel_running = isolated_excel_running
        self.excel_gate = ExcelGate()
        self._version_locks: dict[Path, asyncio.Lock] = {}

    # Paths

    def opportunity_directory(self, calculator_type: CalculatorType | str | None) -> Path:
        if CalculatorType.from_value(calculator_type) is CalculatorType.FLUX:
            return self.settings.epvs_opportunities_dir
        return self.settings.opportunities_dir

    def base_name(self, opportunity_id: str, calculator_type: CalculatorType | str | None) -> str:
        if CalculatorType.from_value(calculator_type) is CalculatorType.FLUX:
            pattern = self.settings.flux_base_name
        else:
            pattern = self.settings.off_peak_base_name
        return pattern.format(opportunity_id=opportunity_id)

    def template_path(self, template_file_name: str | None = None) -> Path:
        """
        Path of a template in the templates folder (default template if None).

        Raises:
            ValidationError: Name is not a bare file name
        """
        name = template_file_name or self.settings.default_template
        if Path(name).name != name:
            raise ValidationError(f"Invalid template name: {name}", field="template_file_name")
        return self.settings.templates_dir / name

    def find_latest_opportunity_file(
        self,
        opportunity_id: str,
        calculator_type: CalculatorType | str | None = None,
        file_name: str | None = None,
    ) -> Path | None:
        """
        Locate the workbook to continue working on.

        An exact file name wins when it exists; otherwise the highest
        version, then the un-versioned legacy file.
        """
        directory = self.opportunity_directory(calculator_type)
        if file_name:
            candidate = directory / Path(file_name).name
            if candidate.is_file():
                return candidate

        base = self.base_name(opportunity_id, calculator_type)
        latest = latest_version_path(directory, base, self.settings.file_extension)
        if latest is not None:
            return latest
        legacy = directory / f"{base}.{self.settings.file_extension}"
        return legacy if legacy.is_file() else None

    def find_opportunity_workbook(
        self,
        opportunity_id: str,
        calculator_type: CalculatorType | str | None = None,
        file_name: str | None = None,
    ) -> tuple[Path, CalculatorType] | None:
        """
        Search for an opportunity workbook when the calculator type may be unknown.

        Tries the requested type (or off-peak then flux), then any workbook
        whose name contains the opportunity ID, newest first.
        """
        if calculator_type is not None:
            types = [CalculatorType.from_value(calculator_type)]
        else:
            types = [CalculatorType.OFF_PEAK, CalculatorType.FLUX]

        for calc_type in types:
            found = self.find_latest_opportunity_file(opportunity_id, calc_type, file_name)
            if found is not None:
                return found, calc_type

        suffix = f".{self.settings.file_extension}"
        for calc_type in types:
            directory = self.opportunity_directory(calc_type)
            if not directory.is_dir():
                continue
            matches = [
                entry for entry in directory.iterdir()
                if entry.is_file() and opportunity_id in entry.name and entry.name.endswith(suffix)
            ]
            if matches:
                newest = max(matches, key=lambda entry: entry.stat().st_mtime)
                return newest, calc_type
        return None

    def resolve_workbook(
        self,
        opportunity_id: str | None,
        calculator_type: CalculatorType | str | None = None,
        template_file_name: str | None = None,
        file_name: str | None = None,
        require_existing: bool = True,
    ) -> Path:
        """
        Pick the workbook an operation should act on.

        Opportunity file first; templates are only used when
        ``require_existing`` is False (read-only inspection).

        Raises:
            WorkbookNotFoundError: Nothing suitable exists
        """
        if opportunity_id:
            found = self.find_latest_opportunity_file(opportunity_id, calculator_type, file_name)
            if found is not None:
                return found
            if require_existing:
                raise WorkbookNotFoundError(
                    str(self.opportunity_directory(calculator_type)
                        / self.base_name(opportunity_id, calculator_type)),
                    {"opportunity_id": opportunity_id},
                )

        template = self.template_path(template_file_name)
        if not require_existing and template.is_file():
            return template
        raise WorkbookNotFoundError(str(template))

    # Script execution

    async def _run(
        self,
        script: str,
        name: str,
        directory: Path | None = None,
    ) -> CalculationOutput:
        async with self.excel_gate.shared():
            result = await self.runner.run_script(script, name, directory)
        parsed = parse_calculation_output(result.output)
        if not result.success or not parsed.success:
            message = parsed.error if parsed.error and parsed.error != "Script did not report a result" else None
            raise ScriptExecutionError(
                f"{name} failed: {message or result.error or 'unknown error'}",
                returncode=result.returncode,
                stderr=result.error,
            )
        return parsed

    async def _run_for_json(self, script: str, name: str) -> Any:
        async with self.excel_gate.shared():
            result = await self.runner.run_script(script, name)
        if not result.success:
            raise ScriptExecutionError(
                f"{name} failed: {result.error or 'unknown error'}",
                returncode=result.returncode,
                stderr=result.error,
            )
        try:
            return parse_json_result(result.output)
        except ValueError as e:
            raise ScriptExecutionError(f"{name} returned no result: {e}", returncode=result.returncode) from e

    async def _cleanup_excel(self) -> None:
        """
        Force Excel to release workbooks once no script of ours is running.

        Excel processes are only closed and killed when no isolated per-user
        host is alive; otherwise only the COM and lock-file cleanup runs.
        """
        kill = not (self.isolated_excel_running and self.isolated_excel_running())
        if not kill:
            logger.info("Isolated Excel hosts are running; skipping Excel process kill")
        async with self.excel_gate.exclusive():
            await self.file_manager.force_cleanup_excel_processes(kill_processes=kill)

    async def _copy_to_new_version(self, template: Path, directory: Path, base: str) -> Path:
        """
        Copy a template into a newly claimed ``-v<N>`` file.

        The version is claimed on disk under a per-workbook lock, so
        concurrent callers always get distinct files.

        Raises:
            WorkbookAccessError: The copy failed; the claimed file is removed
        """
        lock = self._version_locks.setdefault(directory / base, asyncio.Lock())
        async with lock:
            target = await asyncio.to_thread(
                reserve_next_version_path, directory, base, self.settings.file_extension
            )
            if not await self.file_manager.create_safe_file_copy(template, target, reserved=True):
                target.unlink(missing_ok=True)
                raise WorkbookAccessError(str(target), f"Could not copy template to {target}")
        return target

    # Operations

    async def check_opportunity_file_exists(
        self,
        opportunity_id: str,
        calculator_type: CalculatorType | str | None = None,
    ) -> dict[str, Any]:
        """Report whether an opportunity already has a workbook."""
        found = self.find_opportunity_workbook(opportunity_id, calculator_type)
        if found is None:
            return {"exists": False, "file_path": None, "calculator_type": None}
        path, calc_type = found
        return {"exists": True, "file_path": str(path), "calculator_type": calc_type.value}

    async def create_opportunity_file(
        self,
        opportunity_id: str,
        customer: CustomerDetails,
        template_file_name: str | None = None,
        calculator_type: CalculatorType | str | None = None,
        new_version: bool = True,
    ) -> dict[str, Any]:
        """
        Copy a template into a versioned opportunity file and fill the customer block.

        Args:
            opportunity_id: Opportunity identifier
            customer: Name, address, postcode
            template_file_name: Template in the templates folder
            calculator_type: off-peak or flux
            new_version: Always create ``-v<max+1>``; otherwise reuse the latest

        Returns:
            dict: success, message, file_path
        """
        template = self.template_path(template_file_name)
        if not template.is_file():
            raise WorkbookNotFoundError(str(template))
        if not await self.file_manager.ensure_file_access(template):
            raise WorkbookAccessError(str(template))

        directory = self.opportunity_directory(calculator_type)
        base = self.base_name(opportunity_id, calculator_type)
        ext = self.settings.file_extension
        if new_version:
            target = await self._copy_to_new_version(template, directory, base)
        else:
            target = current_or_first_version_path(directory, base, ext)
            if not target.exists() and not await self.file_manager.create_safe_file_copy(template, target):
                raise WorkbookAccessError(str(target), f"Could not copy template to {target}")

        await self._run(
            scripts.populate_customer_script(target, customer.model_dump(), self.settings.password),
            "create-opportunity",
        )
        logger.info(f"Created opportunity file {target.name} for {opportunity_id}")
        return {
            "success": True,
            "message": f"Successfully created opportunity file for {opportunity_id}",
            "file_path": str(target),
        }

    async def select_radio_button(
        self,
        shape_name: str,
        opportunity_id: str,
        calculator_type: CalculatorType | str | None = None,
        file_name: str | None = None,
    ) -> dict[str, Any]:
        """Tick an option button on the opportunity workbook."""
        workbook = self.resolve_workbook(opportunity_id, calculator_type, file_name=file_name)
        await self._run(
            scripts.select_radio_button_script(workbook, shape_name, self.settings.password),
            "radio-button",
        )
        return {
            "success": True,
            "message": f"Selected {shape_name}",
            "file_path": str(workbook),
        }

    async def save_dynamic_inputs(
        self,
        opportunity_id: str,
        inputs: Mapping[str, Any],
        calculator_type: CalculatorType | str | None = None,
        file_name: str | None = None,
    ) -> dict[str, Any]:
        """
        Write form inputs into their mapped cells.

        Unknown field IDs are skipped and reported; blank values are left
        to the workbook.

        Returns:
            dict: success, file_path, cells_written, skipped_fields
        """
        calc_type = CalculatorType.from_value(calculator_type)
        workbook = self.resolve_workbook(opportunity_id, calc_type, file_name=file_name)
        cells, unknown = map_inputs(inputs, calc_type)
        if unknown:
            logger.warning(f"Skipping unmapped fields for {opportunity_id}: {', '.join(unknown)}")

        if cells:
            await self._run(
                scripts.save_inputs_script(workbook, cells, self.settings.password),
                "save-inputs",
            )
        return {
            "success": True,
            "file_path": str(workbook),
            "cells_written": len(cells),
            "skipped_fields": unknown,
        }

    async def write_cell_value(
        self,
        opportunity_id: str,
        cell_reference: str,
        value: Any,
        calculator_type: CalculatorType | str | None = None,
        file_name: str | None = None,
    ) -> dict[str, Any]:
        """
        Write one value to an explicit cell.

        Raises:
            ValidationError: Not an A1-style cell reference
        """
        if not is_valid_cell_reference(cell_reference):
            raise ValidationError(f"Invalid cell reference: {cell_reference}", field="cell_reference")

        workbook = self.resolve_workbook(opportunity_id, calculator_type, file_name=file_name)
        await self._run(
            scripts.write_cell_script(workbook, cell_reference.strip().upper(), value, self.settings.password),
            "write-cell",
        )
        return {"success": True, "file_path": str(workbook), "cell_reference": cell_reference.upper()}

    async def get_enabled_input_fields(
        self,
        opportunity_id: str | None = None,
        template_file_name: str | None = None,
        calculator_type: CalculatorType | str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Fields that are editable in the workbook (unlocked or sheet unprotected).

        Falls back to the template when the opportunity has no workbook yet.
        """
        calc_type = CalculatorType.from_value(calculator_type)
        workbook = self.resolve_workbook(
            opportunity_id,
            calc_type,
            template_file_name=template_file_name,
            require_existing=False,
        )
        script = scripts.check_enabled_cells_script(
            workbook,
            input_field_catalogue(calc_type),
            self.settings.password,
        )
        async with self.excel_gate.shared():
            result = await self.runner.run_script(script, "enabled-inputs")
        if not result.success:
            raise ScriptExecutionError(
                f"enabled-inputs failed: {result.error or 'unknown error'}",
                returncode=result.returncode,
                stderr=result.error,
            )
        try:
            fields = parse_enabled_fields(result.output)
        except ValueError as e:
            raise ScriptExecutionError(f"enabled-inputs returned no result: {e}") from e
        logger.info(f"Retrieved {len(fields)} enabled input fields from {workbook.name}")
        return fields

    async def get_saved_pricing_data(
        self,
        opportunity_id: str,
        calculator_type: CalculatorType | str | None = None,
    ) -> dict[str, str]:
        """
        Read the pricing block of the latest opportunity workbook.

        Returns:
            dict: pricing field -> cell text, plus ``calculator_type``
        """
        found = self.find_opportunity_workbook(opportunity_id, calculator_type)
        if found is None:
            raise WorkbookNotFoundError(opportunity_id, {"opportunity_id": opportunity_id})
        workbook, calc_type = found

        payload = await self._run_for_json(
            scripts.read_pricing_script(
                workbook,
                pricing_cells(calc_type, include_payment_method=True),
                calc_type.value,
                self.settings.password,
            ),
            "read-pricing",
        )
        if not isinstance(payload, dict):
            raise ScriptExecutionError("read-pricing returned unexpected data")
        return {key: "" if value is None else str(value) for key, value in payload.items()}

    async def generate_pdf(
        self,
        opportunity_id: str,
        excel_file_path: Path | str | None = None,
        file_name: str | None = None,
        calculator_type: CalculatorType | str | None = None,
        output_dir: Path | None = None,
    ) -> dict[str, Any]:
        """
        Export an opportunity workbook to PDF.

        Args:
            opportunity_id: Opportunity identifier
            excel_file_path: Explicit workbook, otherwise searched for
            file_name: Exact workbook name to prefer in the search
            calculator_type: Restrict the search to one variant
            output_dir: PDF folder (workbook folder if None)

        Returns:
            dict: success, file_path, pdf_path
        """
        if excel_file_path is not None:
            workbook = Path(excel_file_path)
            if not workbook.is_file():
                raise WorkbookNotFoundError(str(workbook))
        else:
            found = self.find_opportunity_workbook(opportunity_id, calculator_type, file_name)
            if found is None:
                raise WorkbookNotFoundError(opportunity_id, {"opportunity_id": opportunity_id})
            workbook = found[0]

        target_dir = Path(output_dir) if output_dir else workbook.parent
        pdf_path = target_dir / f"{workbook.stem}.pdf"
        parsed = await self._run(
            scripts.export_pdf_script(workbook, pdf_path, self.settings.password),
            "export-pdf",
        )
        return {
            "success": True,
            "file_path": str(workbook),
            "pdf_path": parsed.pdf_path or str(pdf_path),
        }

    async def perform_complete_calculation(self, request: CalculationRequest) -> dict[str, Any]:
        """
        Run the whole calculation on a fresh versioned copy, with retries.

        Each attempt force-closes Excel, copies the template to the next
        version and runs the calculation script. Lock and script failures
        are retried with exponential backoff; a missing template or a
        non-Windows host fails at once.

        Returns:
            dict: success, message, file_path, pdf_path, attempts, skipped_fields
        """
        self.runner.ensure_supported()
        template = self.template_path(request.template_file_name)
        if not template.is_file():
            raise WorkbookNotFoundError(str(template))

        calc_type = CalculatorType.from_value(request.calculator_type)
        cells, unknown = map_inputs(request.dynamic_inputs, calc_type)
        max_attempts = self.settings.max_calculation_attempts

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=2 * self.settings.retry_backoff_seconds, max=120),
            retry=retry_if_exception_type((ScriptExecutionError, WorkbookAccessError)),
            before_sleep=lambda state: logger.warning(
                f"Calculation attempt {state.attempt_number}/{max_attempts} for "
                f"{request.opportunity_id} failed: {state.outcome.exception()}"
            ),
            reraise=True,
        ):
            with attempt:
                result = await self._calculation_attempt(request, template, calc_type, cells)
                result["attempts"] = attempt.retry_state.attempt_number

        result["skipped_fields"] = unknown
        return result

    async def _calculation_attempt(
        self,
        request: CalculationRequest,
        template: Path,
        calc_type: CalculatorType,
        cells: dict[str, str],
    ) -> dict[str, Any]:
        await self._cleanup_excel()

        directory = self.opportunity_directory(calc_type)
        base = self.base_name(request.opportunity_id, calc_type)
        target = await self._copy_to_new_version(template, directory, base)

        pdf_path = target.with_suffix(".pdf") if request.generate_pdf else None
        try:
            parsed = await self._run(
                scripts.complete_calculation_script(
                    target,
                    request.customer_details.model_dump(),
                    request.radio_button_selections,
                    cells,
                    self.settings.password,
                    pdf_path,
                ),
                "complete-calculation",
            )
        except ScriptExecutionError:
            await self._cleanup_excel()
            raise

        logger.info(f"Completed calculation for {request.opportunity_id}: {target.name}")
        return {
            "success": True,
            "message": f"Successfully completed calculation for {request.opportunity_id}",
            "file_path": parsed.file_path or str(target),
            "pdf_path": parsed.pdf_path,
            "calculator_type": calc_type.value,
        }

    async def execute_calculation_in_session(
        self,
        session: UserSession,
        request: CalculationRequest,
    ) -> dict[str, Any]:
        """
        Run the calculation inside a user's isolated working directory.

        The copy goes to ``excel/``, the PDF to ``pdf/`` and the script to
        ``temp/`` of the session folder; shared opportunity folders are not
        touched.
        """
        self.runner.ensure_supported()
        template = self.template_path(request.template_file_name)
        if not template.is_file():
            raise WorkbookNotFoundError(str(template))

        calc_type = CalculatorType.from_value(request.calculator_type)
        cells, unknown = map_inputs(request.dynamic_inputs, calc_type)

        stamp = int(time.time() * 1000)
        stem = f"calculation_{request.opportunity_id}_{stamp}"
        target = session.subdirectory("excel") / f"{stem}.{self.settings.file_extension}"
        pdf_path = session.subdirectory("pdf") / f"{stem}.pdf" if request.generate_pdf else None

        if not await self.file_manager.create_safe_file_copy(template, target):
            raise WorkbookAccessError(str(target), f"Could not copy template to {target}")

        parsed = await self._run(
            scripts.complete_calculation_script(
                target,
                request.customer_details.model_dump(),
                request.radio_button_selections,
                cells,
                self.settings.password,
                pdf_path,
            ),
            "isolated-calculation",
            session.subdirectory("temp"),
        )
        logger.info(f"Completed isolated calculation for user {session.user_id}: {target.name}")
        return {
            "success": True,
            "message": "Calculation completed successfully with user isolation",
            "file_path": parsed.file_path or str(target),
            "pdf_path": parsed.pdf_path,
            "calculator_type": calc_type.value,
            "skipped_fields": unknown,
        }
