"""Isolated Office COM processes per user session."""

from solarcalc.boundary.com.process_manager import ComProcessInfo, ComProcessManager

__all__ = ["ComProcessInfo", "ComProcessManager"]
