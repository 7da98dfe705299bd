"""API-specific dependencies."""

# Re-export common dependencies
from .dependencies import (
    get_operation_record_service,
    get_service_cache,
    get_session_management_service,
    get_settings_dependency,
    get_workbook_service,
)

__all__ = [
    "get_operation_record_service",
    "get_service_cache",
    "get_session_management_service",
    "get_settings_dependency",
    "get_workbook_service",
]
