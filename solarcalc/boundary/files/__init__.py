"""Locked-file aware workbook file operations."""

from solarcalc.boundary.files.file_manager import FileManager

__all__ = ["FileManager"]
