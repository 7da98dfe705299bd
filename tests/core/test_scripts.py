"""
Test suite for workbook script builders.

Scripts are checked for the values and markers they must contain; nothing
is executed.

System role: Verification of PowerShell script generation
"""

import pytest

from solarcalc.core.workbook import scripts
from solarcalc.core.workbook.cell_mapping import input_field_catalogue


class TestRender:
    """Tests for placeholder substitution."""

    def test_fills_placeholders(self) -> None:
        assert scripts.render("a @@X@@ b @@Y@@", X="1", Y="2") == "a 1 b 2"

    def test_missing_token_raises(self) -> None:
        with pytest.raises(KeyError, match="Y"):
            scripts.render("@@X@@ @@Y@@", X="1")

    def test_values_are_not_rescanned(self) -> None:
        assert scripts.render("@@X@@", X="@@Y@@") == "@@Y@@"


class TestWorkbookScripts:
    """Tests for the workbook script family."""

    def test_every_script_opens_and_releases_excel(self) -> None:
        script = scripts.save_inputs_script("C:\\calc\\book.xlsm", {"H19": "24"}, "99")

        assert "$workbookPath = 'C:\\calc\\book.xlsm'" in script
        assert '$password = "99"' in script
        assert "Excel.Application" in script
        assert "ReleaseComObject($excel)" in script
        assert 'Write-Host "RESULT:ERROR"' in script
        assert "@@" not in script

    def test_smart_quote_in_opportunity_path_stays_inside_literal(self) -> None:
        # Arrange
        path = "C:\\Opps\\x\u2019; Start-Process calc; \u2019\\book.xlsm"

        # Act
        script = scripts.populate_customer_script(path, {"customer_name": "Jane"}, "99")

        # Assert
        assert "$workbookPath = 'C:\\Opps\\x''; Start-Process calc; ''\\book.xlsm'" in script
        assert "\u2019" not in script

    def test_customer_values_escaped(self) -> None:
        script = scripts.populate_customer_script(
            "book.xlsm",
            {"customer_name": 'Mr "Joe" $mith', "address": "1 Road", "postcode": "LS1"},
            "99",
        )

        assert '"H12" = "Mr `"Joe`" `$mith"' in script
        assert '"H14" = "LS1"' in script
        assert "RESULT:SUCCESS" in script

    def test_complete_calculation_with_pdf(self) -> None:
        script = scripts.complete_calculation_script(
            "book-v2.xlsm",
            {"customer_name": "Jane"},
            ["Option Button 1"],
            {"H19": "24.5"},
            "99",
            pdf_path="book-v2.pdf",
        )

        assert '@("Option Button 1")' in script
        assert '"H19" = "24.5"' in script
        assert "CalculateFullRebuild" in script
        assert "$pdfPath = 'book-v2.pdf'" in script
        assert "ExportAsFixedFormat" in script

    def test_complete_calculation_without_pdf(self) -> None:
        script = scripts.complete_calculation_script("book.xlsm", {}, [], {}, "99")

        assert "ExportAsFixedFormat" not in script

    def test_check_enabled_lists_fields(self) -> None:
        fields = input_field_catalogue("off-peak")

        script = scripts.check_enabled_cells_script("book.xlsm", fields, "99")

        assert 'cellReference = "H19"' in script
        assert "$wasProtected" in script
        assert "enabledFields" in script

    def test_read_pricing(self) -> None:
        script = scripts.read_pricing_script("book.xlsm", {"deposit": "H81"}, "flux", "99")

        assert '"deposit" = "H81"' in script
        assert '$pricingData["calculator_type"] = "flux"' in script


class TestIsolatedProcessScript:
    """Tests for the long-lived Office host."""

    def test_excel_host(self) -> None:
        script = scripts.isolated_process_script("excel", "C:\\sessions\\u1")

        assert 'Write-Host "Process ID: $PID"' in script
        assert "New-Object -ComObject Excel.Application" in script
        assert '"stop_excel.txt"' in script

    def test_unsupported_application(self) -> None:
        with pytest.raises(ValueError):
            scripts.isolated_process_script("word", "C:\\sessions\\u1")

    def test_supported_applications(self) -> None:
        assert scripts.SUPPORTED_APPLICATIONS == ("excel", "powerpoint")
