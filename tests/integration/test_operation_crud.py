"""
Test suite for OperationCRUD against an in-memory SQLite database.

System role: Verification of operation audit trail persistence
"""

from datetime import datetime, timedelta, timezone

import pytest

from solarcalc.boundary.db.CRUD.operation_crud import operation_crud
from solarcalc.core.session.models import OperationType, RequestStatus


async def _create(db, request_id: str, user_id: str = "alice", minutes: int = 0, **overrides):
    values = {
        "request_id": request_id,
        "user_id": user_id,
        "operation": "excel_calculation",
        "operation_type": OperationType.COM,
        "priority": 4,
        "status": RequestStatus.QUEUED,
        "payload": {"opportunity_id": "OPP1"},
        "queued_at": datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes),
    }
    values.update(overrides)
    return await operation_crud.create(db, **values)


class TestOperationCRUD:
    """Tests for request-ID keyed lookups."""

    @pytest.mark.asyncio
    async def test_create_and_get_by_request_id(self, test_async_db) -> None:
        # Arrange
        created = await _create(test_async_db, "req_1")

        # Act
        fetched = await operation_crud.get_by_request_id(test_async_db, "req_1")

        # Assert
        assert fetched is not None
        assert fetched.id == created.id
        assert fetched.operation_type is OperationType.COM
        assert fetched.payload == {"opportunity_id": "OPP1"}

    @pytest.mark.asyncio
    async def test_get_missing_request_id(self, test_async_db) -> None:
        assert await operation_crud.get_by_request_id(test_async_db, "req_missing") is None

    @pytest.mark.asyncio
    async def test_update_by_request_id(self, test_async_db) -> None:
        await _create(test_async_db, "req_1")

        updated = await operation_crud.update_by_request_id(
            test_async_db,
            "req_1",
            status=RequestStatus.FAILED,
            error="Excel busy",
            duration_ms=120,
        )

        assert updated is not None
        assert updated.status is RequestStatus.FAILED
        assert updated.error == "Excel busy"
        assert updated.duration_ms == 120

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, test_async_db) -> None:
        result = await operation_crud.update_by_request_id(
            test_async_db, "req_missing", status=RequestStatus.COMPLETED
        )

        assert result is None

    @pytest.mark.asyncio
    async def test_get_by_user_newest_first(self, test_async_db) -> None:
        await _create(test_async_db, "req_1", minutes=0)
        await _create(test_async_db, "req_2", minutes=5)
        await _create(test_async_db, "req_3", minutes=10)
        await _create(test_async_db, "req_bob", user_id="bob")

        page = await operation_crud.get_by_user(test_async_db, "alice", limit=2)
        rest = await operation_crud.get_by_user(test_async_db, "alice", limit=2, offset=2)

        assert [op.request_id for op in page] == ["req_3", "req_2"]
        assert [op.request_id for op in rest] == ["req_1"]

    @pytest.mark.asyncio
    async def test_get_by_status(self, test_async_db) -> None:
        await _create(test_async_db, "req_1", status=RequestStatus.FAILED)
        await _create(test_async_db, "req_2")

        failed = await operation_crud.get_by_status(test_async_db, RequestStatus.FAILED)

        assert [op.request_id for op in failed] == ["req_1"]

    @pytest.mark.asyncio
    async def test_count_by_type_and_status(self, test_async_db) -> None:
        await _create(test_async_db, "req_1", status=RequestStatus.COMPLETED)
        await _create(test_async_db, "req_2", status=RequestStatus.COMPLETED)
        await _create(
            test_async_db,
            "req_3",
            operation="file_info",
            operation_type=OperationType.NON_COM,
            status=RequestStatus.FAILED,
        )
        await _create(test_async_db, "req_bob", user_id="bob")

        counts = await operation_crud.count_by_type_and_status(test_async_db, user_id="alice")
        everyone = await operation_crud.count(test_async_db)

        assert counts == {
            (OperationType.COM, RequestStatus.COMPLETED): 2,
            (OperationType.NON_COM, RequestStatus.FAILED): 1,
        }
        assert everyone == 4

    @pytest.mark.asyncio
    async def test_unknown_filter_column(self, test_async_db) -> None:
        with pytest.raises(ValueError, match="no column"):
            await operation_crud.list_by(test_async_db, filters={"bogus": 1})

    @pytest.mark.asyncio
    async def test_delete_by_id(self, test_async_db) -> None:
        created = await _create(test_async_db, "req_1")

        assert await operation_crud.delete_by_id(test_async_db, created.id)
        assert await operation_crud.get_by_id(test_async_db, created.id) is None
