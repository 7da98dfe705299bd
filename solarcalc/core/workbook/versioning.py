"""
Versioned workbook file naming.

Opportunity workbooks are never overwritten while Excel may still hold
them; each new template selection writes ``<base>-v<N>.<ext>`` with N one
above the highest version on disk.

Dependencies: pathlib, re
System role: On-disk versioning of calculator copies
"""

import re
from pathlib import Path


def version_pattern(base_name: str, extension: str = "xlsm") -> re.Pattern[str]:
    """Match ``<base>-v<N>.<ext>`` exactly, capturing N. The base is taken literally."""
    return re.compile(
        rf"^{re.escape(base_name)}-v(\d+)\.{re.escape(extension.lstrip('.'))}$"
    )


def versioned_name(base_name: str, version: int, extension: str = "xlsm") -> str:
    return f"{base_name}-v{version}.{extension.lstrip('.')}"


def list_versions(
    directory: Path,
    base_name: str,
    extension: str = "xlsm",
) -> list[tuple[int, Path]]:
    """
    List existing versions of a workbook, lowest first.

    Args:
        directory: Folder to scan (missing folder yields an empty list)
        base_name: File name without version suffix or extension
        extension: Workbook extension

    Returns:
        list[tuple[int, Path]]: (version, path) pairs sorted by version
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []

    pattern = version_pattern(base_name, extension)
    versions = []
    for entry in directory.iterdir():
        match = pattern.match(entry.name)
        if match and entry.is_file():
            versions.append((int(match.group(1)), entry))
    versions.sort(key=lambda pair: pair[0])
    return versions


def latest_version_path(
    directory: Path,
    base_name: str,
    extension: str = "xlsm",
) -> Path | None:
    """Path of the highest existing version, or None."""
    versions = list_versions(directory, base_name, extension)
    return versions[-1][1] if versions else None


def next_version_path(
    directory: Path,
    base_name: str,
    extension: str = "xlsm",
) -> Path:
    """
    Path for a brand-new version (max existing + 1, starting at 1).

    Creates the directory if needed.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    versions = list_versions(directory, base_name, extension)
    next_version = versions[-1][0] + 1 if versions else 1
    return directory / versioned_name(base_name, next_version, extension)


def current_or_first_version_path(
    directory: Path,
    base_name: str,
    extension: str = "xlsm",
) -> Path:
    """
    Path to keep working on an existing workbook.

    Latest version if any exist, else the un-versioned legacy file if it
    exists, else the ``-v1`` path.
    """
    directory = Path(directory)
    latest = latest_version_path(directory, base_name, extension)
    if latest is not None:
        return latest

    legacy = directory / f"{base_name}.{extension.lstrip('.')}"
    if legacy.is_file():
        return legacy

    directory.mkdir(parents=True, exist_ok=True)
    return directory / versioned_name(base_name, 1, extension)


def reserve_next_version_path(
    directory: Path,
    base_name: str,
    extension: str = "xlsm",
) -> Path:
    """
    Claim a brand-new version on disk and return its path.

    Like next_version_path, but the file is created exclusively as an
    empty placeholder, so two callers can never be handed the same
    version. A name taken between the scan and the create moves on to
    the next number.
    """
    path = next_version_path(directory, base_name, extension)
    pattern = version_pattern(base_name, extension)
    version = int(pattern.match(path.name).group(1))
    while True:
        try:
            with open(path, "xb"):
                pass
        except FileExistsError:
            version += 1
            path = path.parent / versioned_name(base_name, version, extension)
            continue
        return path
