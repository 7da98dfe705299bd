"""
Parsers for workbook script output.

Scripts talk back through tagged stdout lines; anything else they print is
progress noise and ignored.

Dependencies: json, re
System role: Turns PowerShell stdout into structured results
"""

import json
import re
from dataclasses import dataclass
from typing import Any

_RESULT_LINE = re.compile(r"^RESULT:\s*(SUCCESS|ERROR)\s*$", re.MULTILINE)
_FILE_PATH = re.compile(r"^FILE_PATH:\s*(.+?)\s*$", re.MULTILINE)
_PDF_PATH = re.compile(r"^PDF_PATH:\s*(.+?)\s*$", re.MULTILINE)
_ERROR_LINE = re.compile(r"^ERROR:\s*(.+?)\s*$", re.MULTILINE)
_JSON_RESULT = re.compile(r"^RESULT:\s*(\{.*\}|\[.*\])\s*$", re.MULTILINE)
_PROCESS_ID = re.compile(r"Process ID:\s*(\d+)")


@dataclass
class CalculationOutput:
    """Tagged values extracted from a calculation script run."""

    success: bool
    file_path: str | None = None
    pdf_path: str | None = None
    error: str | None = None


def parse_calculation_output(output: str) -> CalculationOutput:
    """
    Extract the outcome of a workbook script.

    The last ``RESULT:`` line wins; output without one is a failure.
    """
    results = _RESULT_LINE.findall(output or "")
    success = bool(results) and results[-1] == "SUCCESS"

    file_match = _FILE_PATH.findall(output or "")
    pdf_match = _PDF_PATH.findall(output or "")
    error_match = _ERROR_LINE.findall(output or "")

    error = error_match[-1] if error_match else None
    if not success and error is None:
        error = "Script did not report a result"

    return CalculationOutput(
        success=success,
        file_path=file_match[-1] if file_match else None,
        pdf_path=pdf_match[-1] if pdf_match else None,
        error=None if success else error,
    )


def parse_json_result(output: str) -> Any:
    """
    Decode the JSON payload of the last ``RESULT: {...}`` line.

    Raises:
        ValueError: No JSON result line, or invalid JSON
    """
    matches = _JSON_RESULT.findall(output or "")
    if not matches:
        raise ValueError("No JSON result found in script output")
    try:
        return json.loads(matches[-1])
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON result: {e}") from e


def parse_enabled_fields(output: str) -> list[dict[str, Any]]:
    """
    Enabled field list from the check-enabled-cells script.

    ConvertTo-Json collapses a one-element array into an object; both
    shapes are accepted.
    """
    payload = parse_json_result(output)
    fields = payload.get("enabledFields") if isinstance(payload, dict) else payload
    if fields is None:
        return []
    if isinstance(fields, dict):
        fields = [fields]
    return [
        {
            "id": field.get("id"),
            "label": field.get("label"),
            "type": field.get("type", "text"),
            "cell_reference": field.get("cellReference"),
            "value": field.get("value", ""),
            "enabled": True,
        }
        for field in fields
    ]


def parse_process_id(output: str) -> int | None:
    """PID from a ``Process ID: <n>`` line, if present."""
    match = _PROCESS_ID.search(output or "")
    return int(match.group(1)) if match else None
