"""
Default queue operation handlers.

Each handler receives the request ``data`` dict and the caller's
UserSession and returns a JSON-friendly result. COM handlers drive Excel
through WorkbookService; non-COM handlers only touch the file system.

Dependencies: pydantic, solarcalc.application.services.workbook_service
System role: Operation name -> coroutine registry for the session queue
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from solarcalc.application.services.workbook_service import WorkbookService
from solarcalc.boundary.files.file_manager import FileManager
from solarcalc.core.exceptions import ValidationError, WorkbookNotFoundError
from solarcalc.core.session.models import OperationType, UserSession
from solarcalc.core.workbook.cell_mapping import CalculatorType
from solarcalc.models.workbook import (
    CalculationRequest,
    CellWriteRequest,
    CreateOpportunityRequest,
    EnabledInputsRequest,
    OpportunityRef,
    RadioButtonRequest,
    SaveInputsRequest,
)

OperationHandler = Callable[[dict[str, Any], UserSession], Awaitable[Any]]

ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(model: type[ModelT], data: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(
            f"Invalid {model.__name__}: {first.get('msg', 'invalid value')}",
            field=field,
            details={"errors": len(e.errors())},
        ) from e


def build_default_handlers(
    workbook_service: WorkbookService,
    file_manager: FileManager,
) -> dict[tuple[OperationType, str], OperationHandler]:
    """
    Build the handler table for the workbook operations.

    Args:
        workbook_service: Excel automation orchestrator
        file_manager: File diagnostics

    Returns:
        dict: (operation type, operation name) -> handler
    """

    async def excel_calculation(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        request = _parse(CalculationRequest, data)
        return await workbook_service.perform_complete_calculation(request)

    async def isolated_calculation(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        request = _parse(CalculationRequest, data)
        return await workbook_service.execute_calculation_in_session(session, request)

    async def epvs_calculation(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        request = _parse(CalculationRequest, {**data, "calculator_type": CalculatorType.FLUX.value})
        return await workbook_service.perform_complete_calculation(request)

    async def pdf_conversion(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        ref = _parse(OpportunityRef, data)
        return await workbook_service.generate_pdf(
            ref.opportunity_id,
            excel_file_path=data.get("excel_file_path"),
            file_name=ref.file_name,
            calculator_type=ref.calculator_type,
            output_dir=session.subdirectory("pdf"),
        )

    async def cell_write(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        request = _parse(CellWriteRequest, data)
        return await workbook_service.write_cell_value(
            request.opportunity_id,
            request.cell_reference,
            request.value,
            request.calculator_type,
            request.file_name,
        )

    async def radio_button(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        request = _parse(RadioButtonRequest, data)
        return await workbook_service.select_radio_button(
            request.shape_name,
            request.opportunity_id,
            request.calculator_type,
            request.file_name,
        )

    async def save_inputs(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        request = _parse(SaveInputsRequest, data)
        return await workbook_service.save_dynamic_inputs(
            request.opportunity_id,
            request.inputs,
            request.calculator_type,
            request.file_name,
        )

    async def create_opportunity(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        request = _parse(CreateOpportunityRequest, data)
        return await workbook_service.create_opportunity_file(
            request.opportunity_id,
            request.customer,
            request.template_file_name,
            request.calculator_type,
            request.new_version,
        )

    async def enabled_inputs(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        request = _parse(EnabledInputsRequest, data)
        fields = await workbook_service.get_enabled_input_fields(
            request.opportunity_id,
            request.template_file_name,
            request.calculator_type,
        )
        return {"fields": fields, "count": len(fields)}

    async def pricing_read(data: dict[str, Any], session: UserSession) -> dict[str, str]:
        ref = _parse(OpportunityRef, data)
        return await workbook_service.get_saved_pricing_data(ref.opportunity_id, ref.calculator_type)

    async def file_info(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        ref = _parse(OpportunityRef, data)
        found = workbook_service.find_opportunity_workbook(
            ref.opportunity_id, ref.calculator_type, ref.file_name
        )
        if found is None:
            raise WorkbookNotFoundError(ref.opportunity_id, {"opportunity_id": ref.opportunity_id})
        path, calc_type = found
        info = await file_manager.get_file_info(path)
        info["calculator_type"] = calc_type.value
        return info

    async def opportunity_file_check(data: dict[str, Any], session: UserSession) -> dict[str, Any]:
        ref = _parse(OpportunityRef, data)
        return await workbook_service.check_opportunity_file_exists(
            ref.opportunity_id, ref.calculator_type
        )

    return {
        (OperationType.COM, "excel_calculation"): excel_calculation,
        (OperationType.COM, "isolated_calculation"): isolated_calculation,
        (OperationType.COM, "epvs_calculation"): epvs_calculation,
        (OperationType.COM, "pdf_conversion"): pdf_conversion,
        (OperationType.COM, "cell_write"): cell_write,
        (OperationType.COM, "radio_button"): radio_button,
        (OperationType.COM, "save_inputs"): save_inputs,
        (OperationType.COM, "create_opportunity"): create_opportunity,
        (OperationType.COM, "enabled_inputs"): enabled_inputs,
        (OperationType.COM, "pricing_read"): pricing_read,
        (OperationType.NON_COM, "file_info"): file_info,
        (OperationType.NON_COM, "opportunity_file_check"): opportunity_file_check,
    }
