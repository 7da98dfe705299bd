"""CRUD operations."""

from solarcalc.boundary.db.CRUD.base_crud import BaseCRUD
from solarcalc.boundary.db.CRUD.operation_crud import OperationCRUD, operation_crud

__all__ = ["BaseCRUD", "OperationCRUD", "operation_crud"]
