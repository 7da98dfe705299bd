"""
Test suite for PowerShell escaping.

System role: Verification of safe value interpolation
"""

from solarcalc.core.workbook.escaping import (
    escape_for_powershell,
    normalise_text,
    powershell_array,
    powershell_hashtable,
    powershell_path,
    powershell_string,
)


class TestNormaliseText:
    """Tests for punctuation and whitespace normalisation."""

    def test_smart_punctuation(self) -> None:
        assert normalise_text("\u201cO\u2019Brien\u201d \u2013 flat\u00a02\u2026") == "\"O'Brien\" - flat 2..."

    def test_line_breaks_flattened(self) -> None:
        assert normalise_text("1 High St\r\nLeeds\nLS1\t1AA ") == "1 High St Leeds LS1 1AA"

    def test_none_is_empty(self) -> None:
        assert normalise_text(None) == ""


class TestEscapeForPowershell:
    """Tests for double-quoted string escaping."""

    def test_special_characters_escaped(self) -> None:
        assert escape_for_powershell('say "hi" $name') == 'say `"hi`" `$name'

    def test_backtick_escaped_once(self) -> None:
        assert escape_for_powershell('a`"b') == 'a```"b'

    def test_subexpression_neutralised(self) -> None:
        assert escape_for_powershell("$(Remove-Item C:\\)") == "`$(Remove-Item C:\\)"

    def test_numbers_stringified(self) -> None:
        assert escape_for_powershell(12.5) == "12.5"


class TestLiterals:
    """Tests for rendered PowerShell literals."""

    def test_string_literal(self) -> None:
        assert powershell_string("O'Brien") == '"O\'Brien"'

    def test_path_literal_single_quoted(self) -> None:
        assert powershell_path("C:\\Quotes\\O'Brien $1.xlsm") == "'C:\\Quotes\\O''Brien $1.xlsm'"

    def test_path_literal_doubles_smart_single_quotes(self) -> None:
        path = "C:\\Opps\\x\u2019; Start-Process calc; \u2018.xlsm"

        literal = powershell_path(path)

        assert literal == "'C:\\Opps\\x''; Start-Process calc; ''.xlsm'"
        assert "\u2018" not in literal and "\u2019" not in literal

    def test_path_literal_low_and_reversed_quotes(self) -> None:
        assert powershell_path("a\u201ab\u201bc") == "'a''b''c'"

    def test_hashtable(self) -> None:
        assert powershell_hashtable({}) == "@{}"
        assert powershell_hashtable({"H19": "24.5"}) == '@{\n    "H19" = "24.5"\n}'

    def test_array(self) -> None:
        assert powershell_array(["Option 1", 'Say "x"']) == '@("Option 1", "Say `"x`"")'
