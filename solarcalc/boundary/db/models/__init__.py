"""ORM models."""

from solarcalc.boundary.db.models.operation_model import OperationModel

__all__ = ["OperationModel"]
