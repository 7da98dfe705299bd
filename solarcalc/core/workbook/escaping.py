"""
PowerShell string escaping.

Values typed into the quote form end up inside double-quoted PowerShell
string literals. Office-style punctuation is normalised to ASCII, control
whitespace is flattened and the characters PowerShell interprets inside
double quotes are escaped with a backtick.

Dependencies: None
System role: Safe interpolation of user values into generated scripts
"""

from typing import Any

_NORMALISE = str.maketrans({
    "\u2018": "'",
    "\u2019": "'",
    "\u201a": "'",
    "\u201b": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u201e": '"',
    "\u2013": "-",
    "\u2014": "-",
    "\u2212": "-",
    "\u00a0": " ",
    "\u2026": "...",
})


def normalise_text(value: Any) -> str:
    """Replace smart punctuation and flatten line breaks and tabs to spaces."""
    if value is None:
        return ""
    text = str(value).translate(_NORMALISE)
    for ch in ("\r\n", "\r", "\n", "\t"):
        text = text.replace(ch, " ")
    return text.strip()


def escape_for_powershell(value: Any) -> str:
    """
    Escape a value for use inside a double-quoted PowerShell string.

    Backtick goes first so the escapes added for ``"`` and ``$`` are not
    doubled.
    """
    text = normalise_text(value)
    text = text.replace("`", "``")
    text = text.replace('"', '`"')
    text = text.replace("$", "`$")
    return text


def powershell_string(value: Any) -> str:
    """Quoted PowerShell literal, e.g. ``"O`"Brien"``."""
    return f'"{escape_for_powershell(value)}"'


_SINGLE_QUOTES = ("'", "\u2018", "\u2019", "\u201a", "\u201b")


def powershell_path(path: Any) -> str:
    """
    Single-quoted literal for a filesystem path.

    PowerShell ends a single-quoted string at any of the ASCII or smart
    single quotes, so each of them is written as a doubled ASCII quote.
    ``$`` needs no escaping here.
    """
    text = str(path)
    for quote in _SINGLE_QUOTES:
        text = text.replace(quote, "''")
    return "'" + text + "'"


def powershell_hashtable(values: dict[str, Any], indent: str = "    ") -> str:
    """Render ``@{ "key" = "value" ... }`` with escaped keys and values."""
    if not values:
        return "@{}"
    lines = [
        f"{indent}{powershell_string(key)} = {powershell_string(val)}"
        for key, val in values.items()
    ]
    return "@{\n" + "\n".join(lines) + "\n}"


def powershell_array(values: list[Any]) -> str:
    """Render ``@("a", "b")`` with escaped items."""
    return "@(" + ", ".join(powershell_string(v) for v in values) + ")"
