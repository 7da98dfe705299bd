"""
Database boundary layer: ORM models, CRUD operations, and connection management.

Exports:
  - Base, UUIDMixin, TimestampMixin: Model building blocks
  - get_async_engine(), get_async_session_factory(), get_async_db(): Async connection management
  - OperationModel: Queued request history
  - operation_crud: CRUD singleton

Dependencies: sqlalchemy, solarcalc.configs
System role: Database adapter for the operation audit trail
"""

from solarcalc.boundary.db.base import Base, TimestampMixin, UUIDMixin
from solarcalc.boundary.db.connection import (
    get_async_db,
    get_async_engine,
    get_async_session_factory,
)
from solarcalc.boundary.db.models.operation_model import OperationModel
from solarcalc.boundary.db.CRUD import BaseCRUD, OperationCRUD, operation_crud

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Connection
    "get_async_db",
    "get_async_engine",
    "get_async_session_factory",
    # Models
    "OperationModel",
    # CRUD
    "BaseCRUD",
    "OperationCRUD",
    "operation_crud",
]
