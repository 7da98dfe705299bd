"""
Test suite for the default operation handler table.

System role: Verification of queue operation -> service call wiring
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from solarcalc.application.services.operation_handlers import build_default_handlers
from solarcalc.core.exceptions import ValidationError, WorkbookNotFoundError
from solarcalc.core.session.models import OperationType, UserSession
from solarcalc.core.workbook.cell_mapping import CalculatorType


@pytest.fixture
def workbook_service() -> MagicMock:
    service = MagicMock()
    service.perform_complete_calculation = AsyncMock(return_value={"success": True})
    service.execute_calculation_in_session = AsyncMock(return_value={"success": True})
    service.generate_pdf = AsyncMock(return_value={"pdf_path": "x.pdf"})
    service.write_cell_value = AsyncMock(return_value={"success": True})
    service.get_enabled_input_fields = AsyncMock(return_value=[{"id": "night_rate"}])
    service.get_saved_pricing_data = AsyncMock(return_value={"deposit": "500"})
    service.check_opportunity_file_exists = AsyncMock(return_value={"exists": False})
    service.find_opportunity_workbook = MagicMock(return_value=None)
    return service


@pytest.fixture
def file_manager() -> MagicMock:
    manager = MagicMock()
    manager.get_file_info = AsyncMock(return_value={"exists": True, "size": 10})
    return manager


@pytest.fixture
def handlers(workbook_service, file_manager):
    return build_default_handlers(workbook_service, file_manager)


@pytest.fixture
def session(temp_dir) -> UserSession:
    return UserSession(user_id="alice", session_id="session_1", working_directory=temp_dir)


class TestHandlerTable:
    def test_registered_operations(self, handlers) -> None:
        com = {name for op_type, name in handlers if op_type is OperationType.COM}
        non_com = {name for op_type, name in handlers if op_type is OperationType.NON_COM}

        assert {"excel_calculation", "epvs_calculation", "pdf_conversion", "cell_write",
                "enabled_inputs", "pricing_read"} <= com
        assert non_com == {"file_info", "opportunity_file_check"}


class TestComHandlers:
    """Tests for Excel-backed handlers."""

    @pytest.mark.asyncio
    async def test_excel_calculation_parses_request(self, handlers, workbook_service, session) -> None:
        data = {"opportunity_id": "OPP1", "customer_details": {"customer_name": "Jane"}}

        await handlers[(OperationType.COM, "excel_calculation")](data, session)

        request = workbook_service.perform_complete_calculation.await_args.args[0]
        assert request.opportunity_id == "OPP1"
        assert request.calculator_type is None

    @pytest.mark.asyncio
    async def test_epvs_calculation_forces_flux(self, handlers, workbook_service, session) -> None:
        data = {"opportunity_id": "OPP1", "customer_details": {"customer_name": "Jane"}, "calculator_type": "off-peak"}

        await handlers[(OperationType.COM, "epvs_calculation")](data, session)

        request = workbook_service.perform_complete_calculation.await_args.args[0]
        assert request.calculator_type is CalculatorType.FLUX

    @pytest.mark.asyncio
    async def test_isolated_calculation_gets_session(self, handlers, workbook_service, session) -> None:
        data = {"opportunity_id": "OPP1", "customer_details": {"customer_name": "Jane"}}

        await handlers[(OperationType.COM, "isolated_calculation")](data, session)

        assert workbook_service.execute_calculation_in_session.await_args.args[0] is session

    @pytest.mark.asyncio
    async def test_pdf_conversion_writes_to_session_pdf_dir(self, handlers, workbook_service, session) -> None:
        await handlers[(OperationType.COM, "pdf_conversion")]({"opportunity_id": "OPP1"}, session)

        assert workbook_service.generate_pdf.await_args.kwargs["output_dir"] == Path(session.working_directory) / "pdf"

    @pytest.mark.asyncio
    async def test_invalid_payload_raises_validation_error(self, handlers, session) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await handlers[(OperationType.COM, "cell_write")]({"opportunity_id": "OPP1"}, session)
        assert exc_info.value.details["field"] == "cell_reference"

    @pytest.mark.asyncio
    async def test_path_in_opportunity_id_rejected(self, handlers, session) -> None:
        with pytest.raises(ValidationError):
            await handlers[(OperationType.COM, "pricing_read")]({"opportunity_id": "../etc"}, session)

    @pytest.mark.asyncio
    async def test_enabled_inputs_wraps_list(self, handlers, session) -> None:
        result = await handlers[(OperationType.COM, "enabled_inputs")]({}, session)

        assert result == {"fields": [{"id": "night_rate"}], "count": 1}


class TestNonComHandlers:
    """Tests for file-only handlers."""

    @pytest.mark.asyncio
    async def test_file_info_missing_workbook(self, handlers, session) -> None:
        with pytest.raises(WorkbookNotFoundError):
            await handlers[(OperationType.NON_COM, "file_info")]({"opportunity_id": "OPP1"}, session)

    @pytest.mark.asyncio
    async def test_file_info_adds_calculator_type(self, handlers, workbook_service, session, temp_dir) -> None:
        workbook_service.find_opportunity_workbook.return_value = (temp_dir / "a.xlsm", CalculatorType.FLUX)

        result = await handlers[(OperationType.NON_COM, "file_info")]({"opportunity_id": "OPP1"}, session)

        assert result == {"exists": True, "size": 10, "calculator_type": "flux"}

    @pytest.mark.asyncio
    async def test_opportunity_file_check(self, handlers, workbook_service, session) -> None:
        result = await handlers[(OperationType.NON_COM, "opportunity_file_check")](
            {"opportunity_id": "OPP1", "calculator_type": "epvs"}, session
        )

        assert result == {"exists": False}
        workbook_service.check_opportunity_file_exists.assert_awaited_once_with("OPP1", CalculatorType.FLUX)
