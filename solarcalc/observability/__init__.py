"""Logging, correlation IDs and request middleware."""

from solarcalc.observability.logger import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
