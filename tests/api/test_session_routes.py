import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from solarcalc.api.deps import get_session_management_service
from solarcalc.api.routers.sessions import router as sessions_router
from solarcalc.boundary.com.process_manager import ComProcessInfo
from solarcalc.core.exceptions import SessionExpiredError, ValidationError
from solarcalc.core.session.models import UserSession


@pytest.fixture
def app():
    app = FastAPI()
    app.include_router(sessions_router)
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def mock_service(client):
    service = MagicMock()
    service.cleanup_user_session = AsyncMock(return_value=True)
    service.start_com_process = AsyncMock()
    client.app.dependency_overrides[get_session_management_service] = lambda: service
    return service


@pytest.fixture
def session():
    return UserSession(
        user_id="alice",
        session_id="session_1700000000000_abc123def",
        working_directory=Path("user-sessions/alice/session_1700000000000_abc123def"),
    )


def test_create_session(client, mock_service, session):
    mock_service.create_or_get_session.return_value = session

    response = client.post("/sessions", json={"user_id": "alice"})

    assert response.status_code == 200
    data = response.json()
    assert data["session_id"] == session.session_id
    assert data["active_operations"] == []
    mock_service.create_or_get_session.assert_called_once_with("alice")


def test_create_session_invalid_user(client, mock_service):
    mock_service.create_or_get_session.side_effect = ValidationError("Invalid user ID: '..'", field="user_id")

    response = client.post("/sessions", json={"user_id": ".."})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid user ID: '..'"


def test_create_session_missing_user_id(client, mock_service):
    response = client.post("/sessions", json={})

    assert response.status_code == 422


def test_get_session(client, mock_service, session):
    mock_service.get_user_session.return_value = session

    response = client.get("/sessions/alice")

    assert response.status_code == 200
    assert response.json()["user_id"] == "alice"


def test_get_session_not_found(client, mock_service):
    mock_service.get_user_session.return_value = None

    response = client.get("/sessions/ghost")

    assert response.status_code == 404


def test_delete_session(client, mock_service):
    response = client.delete("/sessions/alice")

    assert response.status_code == 204
    mock_service.cleanup_user_session.assert_awaited_once_with("alice")


def test_delete_session_not_found(client, mock_service):
    mock_service.cleanup_user_session.return_value = False

    response = client.delete("/sessions/ghost")

    assert response.status_code == 404


def test_start_process(client, mock_service, session):
    mock_service.start_com_process.return_value = ComProcessInfo(
        process_id=4242,
        user_id="alice",
        session_id=session.session_id,
        application="excel",
        working_directory=session.working_directory,
    )

    response = client.post("/sessions/alice/processes/excel")

    assert response.status_code == 200
    assert response.json()["process_id"] == 4242
    mock_service.start_com_process.assert_awaited_once_with("alice", "excel")


def test_start_process_unsupported_application(client, mock_service):
    mock_service.start_com_process.side_effect = ValueError("Unsupported application: word")

    response = client.post("/sessions/alice/processes/word")

    assert response.status_code == 400


def test_start_process_without_session(client, mock_service):
    mock_service.start_com_process.side_effect = SessionExpiredError("ghost")

    response = client.post("/sessions/ghost/processes/excel")

    assert response.status_code == 404
    assert response.json()["detail"] == "Session not found or expired for user ghost"
