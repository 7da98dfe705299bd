"""
Operation ORM model.

Audit trail of every request that went through the operation queue, one
row per request, updated at each lifecycle transition.

Dependencies: sqlalchemy, solarcalc.boundary.db.base, solarcalc.core.session
System role: Persistent history of queued automation work
"""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from solarcalc.boundary.db.base import Base, UUIDMixin, TimestampMixin
from solarcalc.core.session.models import OperationType, RequestStatus


class OperationModel(Base, UUIDMixin, TimestampMixin):
    """
    One queued request and its outcome.

    Attributes:
        id: UUID primary key (auto-generated)
        request_id: Queue request ID (``req_<ms>_<rand>``), unique
        user_id: Requesting user
        operation: Operation name, e.g. ``excel_calculation``
        operation_type: Queue category enum
        priority: Effective priority at enqueue time
        status: Lifecycle state enum (QUEUED/PROCESSING/COMPLETED/FAILED)
        payload: Request data as submitted
        error: Failure message, if any
        queued_at / started_at / completed_at: Transition timestamps
        duration_ms: Handler run time once finished
    """

    __tablename__ = "operations"

    request_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(100), nullable=False)

    operation_type: Mapped[OperationType] = mapped_column(
        Enum(OperationType, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RequestStatus.QUEUED,
    )

    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        doc="Request data as submitted",
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    queued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
