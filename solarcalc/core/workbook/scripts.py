"""
PowerShell script builders for calculator workbook automation.

Each builder returns a complete script. Templates use ``@@NAME@@``
placeholders filled with already-quoted PowerShell literals, so no user
value reaches a script unescaped. Scripts report back through stdout:
``RESULT:SUCCESS`` / ``RESULT:ERROR``, ``FILE_PATH:``, ``PDF_PATH:``,
``ERROR:`` lines, or ``RESULT: {json}`` for data reads.

Dependencies: solarcalc.core.workbook.escaping
System role: Script generation for the PowerShell runner
"""

import re
from pathlib import Path
from typing import Any, Iterable, Mapping

from solarcalc.core.workbook.cell_mapping import (
    CUSTOMER_CELLS,
    INPUTS_SHEET,
    InputField,
)
from solarcalc.core.workbook.escaping import (
    powershell_array,
    powershell_hashtable,
    powershell_path,
    powershell_string,
)

_PLACEHOLDER = re.compile(r"@@([A-Z_]+)@@")


def render(template: str, **tokens: str) -> str:
    """
    Substitute ``@@NAME@@`` placeholders.

    Raises:
        KeyError: A placeholder has no token
    """
    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in tokens:
            raise KeyError(f"Missing script token: {name}")
        return tokens[name]

    return _PLACEHOLDER.sub(_replace, template)


_OPEN_WORKBOOK = """
$excel = New-Object -ComObject Excel.Application
$excel.Visible = $false
$excel.DisplayAlerts = $false
$excel.EnableEvents = $false
$excel.ScreenUpdating = $false
$excel.AskToUpdateLinks = $false
$excel.AutomationSecurity = 1

try {
    $workbook = $excel.Workbooks.Open($workbookPath, 0, $false, 5, $password)
} catch {
    Write-Host "Open with password failed, retrying without password"
    $workbook = $excel.Workbooks.Open($workbookPath)
}

$wasProtected = $workbook.Worksheets.Item(@@SHEET@@).ProtectContents
foreach ($ws in $workbook.Worksheets) {
    if ($ws.ProtectContents) {
        try { $ws.Unprotect($password) } catch { Write-Host "Could not unprotect $($ws.Name)" }
    }
}

$worksheet = $workbook.Worksheets.Item(@@SHEET@@)
if (-not $worksheet) { throw "Inputs worksheet not found" }
"""

_RELEASE_EXCEL = """
    if ($workbook) { try { $workbook.Close($false) } catch { } }
    if ($excel) {
        try { $excel.Quit() } catch { }
        [System.Runtime.Interopservices.Marshal]::ReleaseComObject($excel) | Out-Null
    }
    [System.GC]::Collect()
    [System.GC]::WaitForPendingFinalizers()
"""

_SCRIPT = """
$ErrorActionPreference = "Stop"
$workbookPath = @@WORKBOOK@@
$password = @@PASSWORD@@
$workbook = $null
$excel = $null
$exitCode = 0

try {
@@OPEN@@
@@BODY@@
} catch {
    Write-Host "RESULT:ERROR"
    Write-Host "ERROR: $($_.Exception.Message)"
    $exitCode = 1
} finally {
@@RELEASE@@
}
if ($exitCode) { exit $exitCode }
exit 0
"""


def _wrap(workbook_path: Path | str, password: str, body: str) -> str:
    return render(
        _SCRIPT,
        WORKBOOK=powershell_path(workbook_path),
        PASSWORD=powershell_string(password),
        OPEN=render(_OPEN_WORKBOOK, SHEET=powershell_string(INPUTS_SHEET)),
        BODY=body,
        RELEASE=_RELEASE_EXCEL,
    )


def _customer_block(customer: Mapping[str, Any]) -> str:
    values = {cell: customer.get(field) or "" for field, cell in CUSTOMER_CELLS.items()}
    return render(
        """
$customerCells = @@CELLS@@
foreach ($entry in $customerCells.GetEnumerator()) {
    if ($entry.Value -ne "") { $worksheet.Range($entry.Key).Value = $entry.Value }
}
""",
        CELLS=powershell_hashtable(values),
    )


def _cells_block(cells: Mapping[str, str]) -> str:
    return render(
        """
$cellValues = @@CELLS@@
foreach ($entry in $cellValues.GetEnumerator()) {
    try {
        $worksheet.Range($entry.Key).Value = $entry.Value
    } catch {
        Write-Host "Failed to write $($entry.Key): $_"
    }
}
""",
        CELLS=powershell_hashtable(dict(cells)),
    )


_RADIO_BLOCK = """
$radioButtons = @@SHAPES@@
foreach ($shapeName in $radioButtons) {
    $shape = $worksheet.Shapes.Item($shapeName)
    $selected = $false
    try {
        $shape.ControlFormat.Value = 1
        $selected = $true
    } catch { }
    if (-not $selected -and $shape.OnAction) {
        $excel.Run($shape.OnAction)
        $selected = $true
    }
    if (-not $selected) { throw "Could not select radio button: $shapeName" }
    Write-Host "Selected radio button: $shapeName"
}
"""

_PDF_EXPORT_BLOCK = """
$pdfPath = @@PDF@@
$pdfDir = Split-Path $pdfPath -Parent
if (-not (Test-Path $pdfDir)) { New-Item -ItemType Directory -Path $pdfDir -Force | Out-Null }
$workbook.ExportAsFixedFormat(0, $pdfPath)
if (-not (Test-Path $pdfPath)) { throw "PDF was not created: $pdfPath" }
Write-Host "PDF_PATH: $pdfPath"
"""


def populate_customer_script(
    workbook_path: Path | str,
    customer: Mapping[str, Any],
    password: str,
) -> str:
    """Write customer name, address and postcode (H12:H14) and save."""
    body = _customer_block(customer) + """
$workbook.Save()
Write-Host "RESULT:SUCCESS"
Write-Host "FILE_PATH: $workbookPath"
"""
    return _wrap(workbook_path, password, body)


def save_inputs_script(
    workbook_path: Path | str,
    cells: Mapping[str, str],
    password: str,
) -> str:
    """Write mapped input cells, recalculate and save."""
    body = _cells_block(cells) + """
$excel.Calculate()
$workbook.Save()
Write-Host "RESULT:SUCCESS"
Write-Host "FILE_PATH: $workbookPath"
"""
    return _wrap(workbook_path, password, body)


def select_radio_button_script(
    workbook_path: Path | str,
    shape_name: str,
    password: str,
) -> str:
    """Tick one option-button shape on the Inputs sheet and save."""
    body = render(_RADIO_BLOCK, SHAPES=powershell_array([shape_name])) + """
$excel.Calculate()
$workbook.Save()
Write-Host "RESULT:SUCCESS"
"""
    return _wrap(workbook_path, password, body)


def write_cell_script(
    workbook_path: Path | str,
    cell_reference: str,
    value: Any,
    password: str,
) -> str:
    """Write one cell and save."""
    body = _cells_block({cell_reference: "" if value is None else str(value)}) + """
$workbook.Save()
Write-Host "RESULT:SUCCESS"
"""
    return _wrap(workbook_path, password, body)


def complete_calculation_script(
    workbook_path: Path | str,
    customer: Mapping[str, Any],
    radio_buttons: Iterable[str],
    cells: Mapping[str, str],
    password: str,
    pdf_path: Path | str | None = None,
) -> str:
    """
    Full calculation pass on an already-copied workbook.

    Customer details, radio selections, inputs, full recalculation, save,
    optional PDF export.
    """
    body = (
        _customer_block(customer)
        + render(_RADIO_BLOCK, SHAPES=powershell_array(list(radio_buttons)))
        + _cells_block(cells)
        + """
$excel.Calculate()
$excel.CalculateFullRebuild()
$workbook.Save()
"""
    )
    if pdf_path is not None:
        body += render(_PDF_EXPORT_BLOCK, PDF=powershell_path(pdf_path))
    body += """
Write-Host "RESULT:SUCCESS"
Write-Host "FILE_PATH: $workbookPath"
"""
    return _wrap(workbook_path, password, body)


def check_enabled_cells_script(
    workbook_path: Path | str,
    fields: Iterable[InputField],
    password: str,
) -> str:
    """
    Report which catalogue fields are editable.

    A cell is enabled when it is unlocked or its sheet is not protected.
    Protection is read before the prelude unprotects the sheet.
    """
    entries = "\n".join(
        "    @{ id = %s; label = %s; type = %s; cellReference = %s }" % (
            powershell_string(f.id),
            powershell_string(f.label),
            powershell_string(f.type),
            powershell_string(f.cell_reference),
        )
        for f in fields
    )
    body = render(
        """
$allFields = @(
@@FIELDS@@
)
$enabledFields = @()
foreach ($field in $allFields) {
    $cell = $worksheet.Range($field.cellReference)
    $isEnabled = (-not $cell.Locked) -or (-not $wasProtected)
    if ($isEnabled) {
        $enabledFields += @{
            id = $field.id
            label = $field.label
            type = $field.type
            cellReference = $field.cellReference
            value = [string]$cell.Text
        }
    }
}
$result = @{ success = $true; enabledFields = $enabledFields }
Write-Host "RESULT: $($result | ConvertTo-Json -Depth 4 -Compress)"
""",
        FIELDS=entries,
    )
    return _wrap(workbook_path, password, body)


def read_pricing_script(
    workbook_path: Path | str,
    cells: Mapping[str, str],
    calculator_type: str,
    password: str,
) -> str:
    """Read pricing cells as strings and print them as JSON."""
    body = render(
        """
$pricingFields = @@CELLS@@
$pricingData = @{}
foreach ($entry in $pricingFields.GetEnumerator()) {
    $value = $worksheet.Range($entry.Value).Value2
    if ($value -ne $null) { $pricingData[$entry.Key] = $value.ToString() } else { $pricingData[$entry.Key] = "" }
}
$pricingData["calculator_type"] = @@TYPE@@
Write-Host "RESULT: $($pricingData | ConvertTo-Json -Depth 2 -Compress)"
""",
        CELLS=powershell_hashtable(dict(cells)),
        TYPE=powershell_string(calculator_type),
    )
    return _wrap(workbook_path, password, body)


def export_pdf_script(
    workbook_path: Path | str,
    pdf_path: Path | str,
    password: str,
) -> str:
    """Recalculate and export the workbook to PDF."""
    body = "\n$excel.Calculate()\n" + render(_PDF_EXPORT_BLOCK, PDF=powershell_path(pdf_path)) + """
Write-Host "RESULT:SUCCESS"
"""
    return _wrap(workbook_path, password, body)


_ISOLATED_PROCESS = """
$ErrorActionPreference = "Stop"
$workingDirectory = @@WORKDIR@@
$stopFile = Join-Path $workingDirectory @@STOPFILE@@

Write-Host "Process ID: $PID"

try {
    $app = New-Object -ComObject @@PROGID@@
@@CONFIGURE@@
    Write-Host "@@NAME@@ process ready"
    while ($true) {
        Start-Sleep -Seconds 1
        if (Test-Path $stopFile) {
            Remove-Item $stopFile -Force
            break
        }
    }
} finally {
    if ($app) {
        try { $app.Quit() } catch { }
        [System.Runtime.Interopservices.Marshal]::ReleaseComObject($app) | Out-Null
    }
    [System.GC]::Collect()
    [System.GC]::WaitForPendingFinalizers()
}
"""

_APPLICATIONS = {
    "excel": (
        "Excel",
        "Excel.Application",
        "    $app.Visible = $false\n"
        "    $app.DisplayAlerts = $false\n"
        "    $app.EnableEvents = $false\n"
        "    $app.ScreenUpdating = $false\n"
        "    $app.AskToUpdateLinks = $false\n"
        "    $app.AutomationSecurity = 1",
    ),
    "powerpoint": (
        "PowerPoint",
        "PowerPoint.Application",
        "    $app.DisplayAlerts = 1",
    ),
}

SUPPORTED_APPLICATIONS = tuple(_APPLICATIONS)


def stop_file_name(application: str) -> str:
    return f"stop_{application}.txt"


def isolated_process_script(application: str, working_directory: Path | str) -> str:
    """
    Long-lived Office process for one session.

    Prints ``Process ID: <pid>`` first, then polls for ``stop_<app>.txt``
    in the working directory.

    Raises:
        ValueError: Unsupported application
    """
    if application not in _APPLICATIONS:
        raise ValueError(f"Unsupported application: {application}")
    name, prog_id, configure = _APPLICATIONS[application]
    return render(
        _ISOLATED_PROCESS,
        WORKDIR=powershell_path(working_directory),
        STOPFILE=powershell_string(stop_file_name(application)),
        PROGID=prog_id,
        CONFIGURE=configure,
        NAME=name,
    )


GRACEFUL_CLOSE_EXCEL = """
Get-Process -Name "EXCEL" -ErrorAction SilentlyContinue | ForEach-Object {
    try {
        $_.CloseMainWindow() | Out-Null
        Start-Sleep -Milliseconds 500
        if (-not $_.HasExited) { $_.Kill() }
    } catch {
        Write-Host "Process $($_.Id) already terminated"
    }
}
"""

FORCE_KILL_EXCEL = """
Get-Process -Name "EXCEL" -ErrorAction SilentlyContinue | Stop-Process -Force -ErrorAction SilentlyContinue
"""

CLEANUP_COM_OBJECTS = """
[System.GC]::Collect()
[System.GC]::WaitForPendingFinalizers()
[System.GC]::Collect()
$tempPath = $env:TEMP
Get-ChildItem -Path $tempPath -Filter '~$*.xls*' -ErrorAction SilentlyContinue | Remove-Item -Force -ErrorAction SilentlyContinue
Get-ChildItem -Path $tempPath -Filter '*.tmp' -ErrorAction SilentlyContinue | Remove-Item -Force -ErrorAction SilentlyContinue
Write-Host "COM cleanup completed"
"""
