"""
Workbook operation payloads.

Validated shapes of the ``data`` dict carried by queued workbook
operations.

Dependencies: pydantic
System role: Contracts between the queue and WorkbookService
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from solarcalc.core.workbook.cell_mapping import CalculatorType


class CustomerDetails(BaseModel):
    """Customer block written to H12:H14."""

    customer_name: str = Field(..., min_length=1)
    address: str = ""
    postcode: str = ""


class OpportunityRef(BaseModel):
    """Identifies an opportunity workbook."""

    opportunity_id: str = Field(..., min_length=1)
    calculator_type: CalculatorType | None = None
    file_name: str | None = Field(default=None, description="Exact workbook file name to prefer")

    @field_validator("opportunity_id")
    @classmethod
    def _no_path_separators(cls, value: str) -> str:
        if "/" in value or "\\" in value or ".." in value:
            raise ValueError("opportunity_id must not contain path separators")
        return value

    @field_validator("calculator_type", mode="before")
    @classmethod
    def _calculator_alias(cls, value: Any) -> Any:
        return CalculatorType.from_value(value) if value is not None else None


class CreateOpportunityRequest(OpportunityRef):
    customer: CustomerDetails
    template_file_name: str | None = None
    new_version: bool = True


class CalculationRequest(OpportunityRef):
    """Full calculation: copy template, fill, calculate, save, export."""

    customer_details: CustomerDetails
    radio_button_selections: list[str] = Field(default_factory=list)
    dynamic_inputs: dict[str, Any] = Field(default_factory=dict)
    template_file_name: str | None = None
    generate_pdf: bool = True


class RadioButtonRequest(OpportunityRef):
    shape_name: str = Field(..., min_length=1)


class SaveInputsRequest(OpportunityRef):
    inputs: dict[str, Any] = Field(default_factory=dict)


class CellWriteRequest(OpportunityRef):
    cell_reference: str = Field(..., min_length=2)
    value: Any = None


class EnabledInputsRequest(BaseModel):
    opportunity_id: str | None = None
    template_file_name: str | None = None
    calculator_type: CalculatorType | None = None

    @field_validator("calculator_type", mode="before")
    @classmethod
    def _calculator_alias(cls, value: Any) -> Any:
        return CalculatorType.from_value(value) if value is not None else None
