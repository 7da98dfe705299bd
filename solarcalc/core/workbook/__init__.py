"""Calculator workbook rules: file versions, cell maps, scripts, output parsing."""

from solarcalc.core.workbook.cell_mapping import CalculatorType, cell_mappings, map_inputs
from solarcalc.core.workbook.output_parser import (
    CalculationOutput,
    parse_calculation_output,
    parse_json_result,
)

__all__ = [
    "CalculationOutput",
    "CalculatorType",
    "cell_mappings",
    "map_inputs",
    "parse_calculation_output",
    "parse_json_result",
]
