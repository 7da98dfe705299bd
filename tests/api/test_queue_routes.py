import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock

from solarcalc.api.deps import get_session_management_service
from solarcalc.api.routers.queue import router as queue_router
from solarcalc.core.exceptions import (
    PlatformNotSupportedError,
    ScriptExecutionError,
    UnknownOperationError,
    ValidationError,
)

QUEUE_STATUS = {
    "total_queued": 1,
    "total_active": 2,
    "total_active_sessions": 3,
    "by_type": {
        "com": {"queued": 1, "active": 2, "max_concurrent": 5},
        "non-com": {"queued": 0, "active": 0, "max_concurrent": 15},
        "database": {"queued": 0, "active": 0, "max_concurrent": 20},
        "api": {"queued": 0, "active": 0, "max_concurrent": 10},
    },
}


@pytest.fixture
def app():
    app = FastAPI()
    app.include_router(queue_router)
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def mock_service(client):
    service = MagicMock()
    service.queue_request = AsyncMock(return_value={"file_path": "OPP1_v1.xlsm"})
    service.run_batch = AsyncMock()
    service.get_queue_status.return_value = QUEUE_STATUS
    client.app.dependency_overrides[get_session_management_service] = lambda: service
    return service


def test_queue_status(client, mock_service):
    response = client.get("/queue/status")

    assert response.status_code == 200
    assert response.json() == QUEUE_STATUS


def test_queue_operation(client, mock_service):
    payload = {"user_id": "alice", "operation": "excel_calculation", "data": {"opportunity_id": "OPP1"}}

    response = client.post("/queue/com", json=payload)

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "operation": "excel_calculation",
        "operation_type": "com",
        "result": {"file_path": "OPP1_v1.xlsm"},
    }
    args = mock_service.queue_request.await_args.args
    assert args[0] == "alice"
    assert args[1] == "excel_calculation"
    assert args[3] == {"opportunity_id": "OPP1"}
    assert args[4] is None


def test_queue_operation_with_priority(client, mock_service):
    client.post("/queue/non-com", json={"user_id": "alice", "operation": "file_info", "priority": 9})

    assert mock_service.queue_request.await_args.args[4] == 9


def test_queue_invalid_operation_type(client, mock_service):
    response = client.post("/queue/gpu", json={"user_id": "alice", "operation": "x"})

    assert response.status_code == 422
    mock_service.queue_request.assert_not_called()


@pytest.mark.parametrize(
    "error, status_code",
    [
        (ValidationError("Invalid cell reference"), 400),
        (UnknownOperationError("com", "nope"), 404),
        (PlatformNotSupportedError("linux"), 503),
        (ScriptExecutionError("complete-calculation failed: locked"), 500),
    ],
)
def test_queue_operation_errors(client, mock_service, error, status_code):
    mock_service.queue_request.side_effect = error

    response = client.post("/queue/com", json={"user_id": "alice", "operation": "excel_calculation"})

    assert response.status_code == status_code


def test_unexpected_error_detail(client, mock_service):
    mock_service.queue_request.side_effect = RuntimeError("boom")

    response = client.post("/queue/com", json={"user_id": "alice", "operation": "cell_write"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Operation cell_write failed: boom"


def test_run_batch(client, mock_service):
    mock_service.get_user_session.return_value = MagicMock()
    mock_service.run_batch.return_value = {
        "results": [
            {"operation": "file_info", "operation_type": "non-com", "success": True, "result": {"exists": True}},
            {"operation": "cell_write", "operation_type": "com", "success": False, "error": "locked"},
        ],
        "total_operations": 2,
        "successful": 1,
        "failed": 1,
        "total_time_ms": 12.0,
        "average_time_ms": 6.0,
        "by_type": {"non-com": 1, "com": 1},
    }

    response = client.post("/queue/batch", json={
        "user_id": "alice",
        "operations": [
            {"operation": "file_info", "operation_type": "non-com"},
            {"operation": "cell_write", "operation_type": "com", "data": {"cell_reference": "H19"}},
        ],
    })

    assert response.status_code == 200
    data = response.json()
    assert data["failed"] == 1
    assert data["results"][1]["error"] == "locked"
    operations = mock_service.run_batch.await_args.args[1]
    assert operations[1]["data"] == {"cell_reference": "H19"}
    assert operations[1]["priority"] is None


def test_run_batch_without_session(client, mock_service):
    mock_service.get_user_session.return_value = None

    response = client.post("/queue/batch", json={
        "user_id": "ghost",
        "operations": [{"operation": "file_info", "operation_type": "non-com"}],
    })

    assert response.status_code == 404
    mock_service.run_batch.assert_not_called()


def test_run_batch_requires_operations(client, mock_service):
    response = client.post("/queue/batch", json={"user_id": "alice", "operations": []})

    assert response.status_code == 422
