"""
Calculator workbook cell mappings.

Every writable input on the ``Inputs`` sheet of the two calculator
variants (off-peak and flux/EPVS), keyed by the field IDs the frontend
sends. The variants share most cells; consumption and pricing rows differ.

Dependencies: re
System role: Field ID -> cell reference lookup for workbook scripts
"""

import enum
import re
from dataclasses import dataclass
from typing import Any, Mapping

INPUTS_SHEET = "Inputs"

_CELL_REFERENCE = re.compile(r"^\$?([A-Z]{1,3})\$?([1-9][0-9]{0,6})$")


class CalculatorType(str, enum.Enum):
    """Calculator workbook variants."""

    OFF_PEAK = "off-peak"
    FLUX = "flux"

    @classmethod
    def from_value(cls, value: "CalculatorType | str | None") -> "CalculatorType":
        """Accept ``epvs`` as an alias for flux; None means off-peak."""
        if value is None:
            return cls.OFF_PEAK
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized == "epvs":
            return cls.FLUX
        return cls(normalized)


@dataclass(frozen=True)
class InputField:
    """Catalogue entry for one workbook input."""

    id: str
    label: str
    cell_reference: str
    type: str = "text"
    dropdown: bool = False


CUSTOMER_CELLS: dict[str, str] = {
    "customer_name": "H12",
    "address": "H13",
    "postcode": "H14",
}

_TARIFF_CELLS = {
    "single_day_rate": "H19",
    "night_rate": "H20",
    "off_peak_hours": "H21",
    "new_day_rate": "H23",
    "new_night_rate": "H24",
}

_OFF_PEAK_CONSUMPTION_CELLS = {
    "annual_usage": "H26",
    "estimated_annual_usage": "H26",
    "standing_charge": "H27",
    "annual_spend": "H28",
    "export_tariff_rate": "H30",
}

_FLUX_CONSUMPTION_CELLS = {
    "estimated_annual_usage": "H26",
    "annual_usage": "H26",
    "estimated_peak_annual_usage": "H27",
    "estimated_off_peak_usage": "H28",
    "standing_charges": "H29",
    "total_annual_spend": "H30",
    "peak_annual_spend": "H31",
    "off_peak_annual_spend": "H32",
}

_EXISTING_SYSTEM_CELLS = {
    "existing_sem": "H34",
    "commissioning_date": "H35",
    "sem_percentage": "H36",
}

_EQUIPMENT_CELLS = {
    "panel_manufacturer": "H41",
    "panel_model": "H42",
    "no_of_arrays": "H43",
    "battery_manufacturer": "H45",
    "battery_model": "H46",
    "battery_extended_warranty_period": "H49",
    "battery_replacement_cost": "H50",
    "solar_inverter_manufacturer": "H52",
    "solar_inverter_model": "H53",
    "solar_inverter_extended_warranty_period": "H56",
    "solar_inverter_replacement_cost": "H57",
    "battery_inverter_manufacturer": "H59",
    "battery_inverter_model": "H60",
    "battery_inverter_extended_warranty_period": "H63",
    "battery_inverter_replacement_cost": "H64",
}

ARRAY_FIRST_ROW = 69
ARRAY_COUNT = 8
ARRAY_COLUMNS: dict[str, str] = {
    "num_panels": "C",
    "panel_size_wp": "D",
    "array_size_kwp": "E",
    "orientation_deg_from_south": "F",
    "pitch_deg_from_flat": "G",
    "irradiance_kk": "H",
    "shading_factor": "I",
}

PRICING_FIELDS = (
    "total_system_cost",
    "deposit",
    "interest_rate",
    "interest_rate_type",
    "payment_term",
)
_PRICING_FIRST_ROW = {CalculatorType.OFF_PEAK: 80, CalculatorType.FLUX: 81}

DROPDOWN_FIELDS = frozenset({
    "panel_manufacturer",
    "panel_model",
    "battery_manufacturer",
    "battery_model",
    "solar_inverter_manufacturer",
    "solar_inverter_model",
    "battery_inverter_manufacturer",
    "battery_inverter_model",
})

FIELD_LABELS: dict[str, str] = {
    "single_day_rate": "Single / Day Rate (pence per kWh)",
    "night_rate": "Night Rate (pence per kWh)",
    "off_peak_hours": "No. of Off-Peak Hours",
    "new_day_rate": "Day Rate (pence per kWh)",
    "new_night_rate": "Night Rate (pence per kWh)",
    "annual_usage": "Estimated Annual Usage (kWh)",
    "estimated_annual_usage": "Estimated Annual Usage (kWh)",
    "estimated_peak_annual_usage": "Estimated Peak Annual Usage (kWh)",
    "estimated_off_peak_usage": "Estimated Off-Peak Usage (kWh)",
    "standing_charge": "Standing Charge (pence per day)",
    "standing_charges": "Standing Charges (pence per day)",
    "annual_spend": "Annual Spend (£)",
    "total_annual_spend": "Total Annual Spend (£)",
    "peak_annual_spend": "Peak Annual Spend (£)",
    "off_peak_annual_spend": "Off-Peak Annual Spend (£)",
    "export_tariff_rate": "Export Tariff Rate (pence per kWh)",
    "existing_sem": "Existing SEM",
    "commissioning_date": "Approximate Commissioning Date",
    "sem_percentage": "Percentage of above SEM used to quote self-consumption savings",
    "panel_manufacturer": "Panel Manufacturer",
    "panel_model": "Panel Model",
    "no_of_arrays": "No. of Arrays",
    "battery_manufacturer": "Battery Manufacturer",
    "battery_model": "Battery Model",
    "battery_extended_warranty_period": "Battery Extended Warranty Period (years)",
    "battery_replacement_cost": "Battery Replacement Cost (£)",
    "solar_inverter_manufacturer": "Solar Inverter Manufacturer",
    "solar_inverter_model": "Solar Inverter Model",
    "solar_inverter_extended_warranty_period": "Solar Inverter Extended Warranty Period (years)",
    "solar_inverter_replacement_cost": "Solar Inverter Replacement Cost (£)",
    "battery_inverter_manufacturer": "Battery Inverter Manufacturer",
    "battery_inverter_model": "Battery Inverter Model",
    "battery_inverter_extended_warranty_period": "Battery Inverter Extended Warranty Period (years)",
    "battery_inverter_replacement_cost": "Battery Inverter Replacement Cost (£)",
}

_TEXT_FIELDS = DROPDOWN_FIELDS | {"existing_sem", "commissioning_date"}


def array_field_id(array_number: int, field: str) -> str:
    """``array<N>_<field>``, N from 1 to 8."""
    return f"array{array_number}_{field}"


def array_cells() -> dict[str, str]:
    cells = {}
    for index in range(ARRAY_COUNT):
        row = ARRAY_FIRST_ROW + index
        for field, column in ARRAY_COLUMNS.items():
            cells[array_field_id(index + 1, field)] = f"{column}{row}"
    return cells


def pricing_cells(calculator_type: CalculatorType | str, include_payment_method: bool = False) -> dict[str, str]:
    """
    Pricing cells for a calculator variant.

    Args:
        calculator_type: Workbook variant
        include_payment_method: Add the read-only payment method row

    Returns:
        dict[str, str]: Field ID -> cell reference
    """
    first_row = _PRICING_FIRST_ROW[CalculatorType.from_value(calculator_type)]
    fields = PRICING_FIELDS + (("payment_method",) if include_payment_method else ())
    return {field: f"H{first_row + offset}" for offset, field in enumerate(fields)}


def cell_mappings(calculator_type: CalculatorType | str) -> dict[str, str]:
    """
    All writable input cells for a calculator variant (customer cells excluded).

    Returns:
        dict[str, str]: Field ID -> cell reference
    """
    calc_type = CalculatorType.from_value(calculator_type)
    consumption = (
        _FLUX_CONSUMPTION_CELLS if calc_type is CalculatorType.FLUX
        else _OFF_PEAK_CONSUMPTION_CELLS
    )
    return {
        **_TARIFF_CELLS,
        **consumption,
        **_EXISTING_SYSTEM_CELLS,
        **_EQUIPMENT_CELLS,
        **array_cells(),
        **pricing_cells(calc_type),
    }


def map_inputs(
    inputs: Mapping[str, Any],
    calculator_type: CalculatorType | str,
) -> tuple[dict[str, str], list[str]]:
    """
    Translate field IDs to cell writes.

    Empty values are skipped (the workbook keeps its own default). Aliases
    sharing a cell resolve to the last value given.

    Returns:
        tuple: (cell reference -> string value, unknown field IDs)
    """
    mappings = cell_mappings(calculator_type)
    cells: dict[str, str] = {}
    unknown: list[str] = []
    for field_id, value in inputs.items():
        cell = mappings.get(field_id)
        if cell is None:
            unknown.append(field_id)
            continue
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        cells[cell] = str(value)
    return cells, unknown


def is_valid_cell_reference(reference: str) -> bool:
    """A1-style single cell reference, e.g. ``H19`` or ``$C$69``."""
    return bool(_CELL_REFERENCE.match(reference.strip().upper())) if reference else False


def _field_type(field_id: str) -> str:
    return "text" if field_id in _TEXT_FIELDS else "number"


def input_field_catalogue(calculator_type: CalculatorType | str) -> list[InputField]:
    """
    Input fields whose enabled state the detection script checks.

    Array and pricing cells are excluded; they are shown by the frontend
    independently of sheet protection.
    """
    calc_type = CalculatorType.from_value(calculator_type)
    consumption = (
        _FLUX_CONSUMPTION_CELLS if calc_type is CalculatorType.FLUX
        else _OFF_PEAK_CONSUMPTION_CELLS
    )
    fields = []
    seen_cells = set()
    for field_id, cell in {**_TARIFF_CELLS, **consumption, **_EXISTING_SYSTEM_CELLS, **_EQUIPMENT_CELLS}.items():
        # Aliases share a cell; list each cell once
        if cell in seen_cells:
            continue
        seen_cells.add(cell)
        fields.append(InputField(
            id=field_id,
            label=FIELD_LABELS.get(field_id, field_id.replace("_", " ").title()),
            cell_reference=cell,
            type=_field_type(field_id),
            dropdown=field_id in DROPDOWN_FIELDS,
        ))
    return fields
