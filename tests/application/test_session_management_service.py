"""
Test suite for SessionManagementService.

Uses a real registry and queue with in-test handlers; the COM process
manager is mocked.

System role: Verification of multi-user request isolation
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from solarcalc.application.services.session_management_service import SessionManagementService
from solarcalc.configs.queue import QueueSettings
from solarcalc.core.exceptions import SessionExpiredError, UnknownOperationError
from solarcalc.core.session.models import OperationType, RequestStatus


@pytest.fixture
def queue_settings(temp_dir) -> QueueSettings:
    return QueueSettings(base_working_dir=temp_dir, max_concurrent_com=2, cleanup_interval_seconds=0.01)


@pytest.fixture
async def service(queue_settings, mock_process_manager):
    service = SessionManagementService(queue_settings, mock_process_manager)
    yield service
    await service.stop()


def _expire(service: SessionManagementService, user_id: str) -> None:
    session = service.registry.get_any(user_id)
    session.last_activity = datetime.now(timezone.utc) - timedelta(hours=1)


class TestQueueRequest:
    """Tests for single operations."""

    @pytest.mark.asyncio
    async def test_handler_receives_data_and_session(self, service) -> None:
        # Arrange
        received = {}

        async def handler(data, session):
            received["data"] = data
            received["session"] = session
            received["active"] = set(session.active_operations)
            return {"ok": True}

        service.register_handler("non-com", "echo", handler)
        session = service.create_or_get_session("alice")

        # Act
        result = await service.queue_request("alice", "echo", OperationType.NON_COM, {"x": 1})

        # Assert
        assert result == {"ok": True}
        assert received["data"] == {"x": 1}
        assert received["session"] is session
        assert len(received["active"]) == 1
        assert not service.has_active_operations("alice")

    @pytest.mark.asyncio
    async def test_unknown_operation(self, service) -> None:
        service.create_or_get_session("alice")

        with pytest.raises(UnknownOperationError):
            await service.queue_request("alice", "nope", "com")

    @pytest.mark.asyncio
    async def test_unknown_operation_type(self, service) -> None:
        with pytest.raises(UnknownOperationError):
            await service.queue_request("alice", "echo", "gpu")

    @pytest.mark.asyncio
    async def test_requires_valid_session(self, service) -> None:
        service.register_handler("com", "calc", AsyncMock())

        with pytest.raises(SessionExpiredError):
            await service.queue_request("ghost", "calc", "com")

    @pytest.mark.asyncio
    async def test_session_expiring_while_queued(self, service) -> None:
        """Execution re-checks the session at start time."""
        release = asyncio.Event()

        async def blocker(data, session):
            await release.wait()
            return "done"

        handler = AsyncMock(return_value="never")
        service.register_handler("com", "block", blocker)
        service.register_handler("com", "calc", handler)
        service.create_or_get_session("alice")
        service.create_or_get_session("bob")

        first = asyncio.create_task(service.queue_request("alice", "block", "com"))
        second = asyncio.create_task(service.queue_request("alice", "block", "com"))
        await asyncio.sleep(0)
        waiting = asyncio.create_task(service.queue_request("bob", "calc", "com"))
        await asyncio.sleep(0)
        _expire(service, "bob")
        release.set()

        assert await first == "done"
        assert await second == "done"
        with pytest.raises(SessionExpiredError):
            await waiting
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_handler_error_propagates(self, service) -> None:
        async def failing(data, session):
            raise RuntimeError("excel crashed")

        service.register_handler("com", "calc", failing)
        service.create_or_get_session("alice")

        with pytest.raises(RuntimeError, match="excel crashed"):
            await service.queue_request("alice", "calc", "com")
        assert not service.has_active_operations("alice")


class TestRunBatch:
    """Tests for concurrent batches."""

    @pytest.mark.asyncio
    async def test_mixed_outcomes(self, service) -> None:
        async def ok(data, session):
            return data["n"] * 2

        async def bad(data, session):
            raise ValueError("bad input")

        service.register_handler("com", "double", ok)
        service.register_handler("api", "fail", bad)
        service.create_or_get_session("alice")

        result = await service.run_batch("alice", [
            {"operation": "double", "operation_type": "com", "data": {"n": 2}},
            {"operation": "double", "operation_type": "com", "data": {"n": 5}},
            {"operation": "fail", "operation_type": "api"},
        ])

        assert result["total_operations"] == 3
        assert result["successful"] == 2
        assert result["failed"] == 1
        assert [r.get("result") for r in result["results"][:2]] == [4, 10]
        assert result["results"][2]["error"] == "bad input"
        assert result["by_type"] == {"com": 2, "api": 1}
        assert result["average_time_ms"] == pytest.approx(result["total_time_ms"] / 3)

    @pytest.mark.asyncio
    async def test_unknown_type_fails_only_its_entry(self, service) -> None:
        # Arrange
        async def ok(data, session):
            return "done"

        service.register_handler("com", "work", ok)
        service.create_or_get_session("alice")

        # Act
        result = await service.run_batch("alice", [
            {"operation": "work", "operation_type": "com"},
            {"operation": "work", "operation_type": "bogus"},
        ])

        # Assert
        assert result["successful"] == 1
        assert result["failed"] == 1
        assert result["results"][0]["result"] == "done"
        assert result["results"][1]["success"] is False
        assert result["results"][1]["operation_type"] == "bogus"
        assert "bogus" in result["results"][1]["error"]
        assert result["by_type"] == {"com": 1, "bogus": 1}


class TestSessionLifecycle:
    """Tests for processes, cleanup and status."""

    @pytest.mark.asyncio
    async def test_start_com_process_records_pid(self, service, mock_process_manager) -> None:
        session = service.create_or_get_session("alice")
        mock_process_manager.create_process.return_value = MagicMock(process_id=555)

        info = await service.start_com_process("alice", "excel")

        assert info.process_id == 555
        assert session.com_processes == {"excel": 555}
        mock_process_manager.create_process.assert_awaited_once_with(
            "excel", "alice", session.session_id, session.working_directory
        )

    @pytest.mark.asyncio
    async def test_start_com_process_without_session(self, service) -> None:
        with pytest.raises(SessionExpiredError):
            await service.start_com_process("ghost", "excel")

    @pytest.mark.asyncio
    async def test_cleanup_user_session(self, service, mock_process_manager) -> None:
        session = service.create_or_get_session("alice")

        assert await service.cleanup_user_session("alice")

        mock_process_manager.kill_user_processes.assert_awaited_once_with("alice")
        assert not session.working_directory.exists()
        assert service.get_user_session("alice") is None
        assert not await service.cleanup_user_session("alice")

    @pytest.mark.asyncio
    async def test_cleanup_expired_skips_busy_sessions(self, service) -> None:
        service.create_or_get_session("idle")
        busy = service.create_or_get_session("busy")
        service.create_or_get_session("fresh")
        _expire(service, "idle")
        _expire(service, "busy")
        busy.active_operations.add("req_1")

        removed = await service.cleanup_expired_sessions()

        assert removed == 1
        assert service.registry.get_any("idle") is None
        assert service.registry.get_any("busy") is busy
        assert service.get_user_session("fresh") is not None

    @pytest.mark.asyncio
    async def test_periodic_sweep(self, service) -> None:
        service.create_or_get_session("idle")
        _expire(service, "idle")

        service.start()
        for _ in range(50):
            if service.registry.get_any("idle") is None:
                break
            await asyncio.sleep(0.01)

        assert service.registry.get_any("idle") is None

    @pytest.mark.asyncio
    async def test_queue_status_counts_sessions(self, service) -> None:
        service.create_or_get_session("alice")

        status = service.get_queue_status()

        assert status["total_active_sessions"] == 1
        assert status["by_type"]["com"]["max_concurrent"] == 2

    @pytest.mark.asyncio
    async def test_recorder_receives_transitions(self, queue_settings, mock_process_manager) -> None:
        recorder = MagicMock()
        recorder.record = AsyncMock()
        service = SessionManagementService(queue_settings, mock_process_manager, recorder=recorder)
        service.register_handler("database", "noop", AsyncMock(return_value=None))
        service.create_or_get_session("alice")

        await service.queue_request("alice", "noop", "database")
        await service.queue.flush_transitions()

        statuses = [call.args[0].status for call in recorder.record.await_args_list]
        assert statuses == [RequestStatus.QUEUED, RequestStatus.PROCESSING, RequestStatus.COMPLETED]
        await service.stop()
