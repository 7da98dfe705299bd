import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock

from solarcalc.api.deps import get_session_management_service
from solarcalc.api.routers.health import router as health_router
from solarcalc.boundary.db import get_async_db


@pytest.fixture
def app():
    app = FastAPI()
    app.include_router(health_router)
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def mock_db(client):
    db = MagicMock()
    db.execute = AsyncMock()
    client.app.dependency_overrides[get_async_db] = lambda: db
    return db


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "message": "Server Healthy"}


def test_health_check_db(client, mock_db):
    response = client.get("/health/db")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "message": "Database connection OK"}
    mock_db.execute.assert_awaited_once()


def test_health_check_db_unavailable(client, mock_db):
    mock_db.execute.side_effect = ConnectionError("refused")

    response = client.get("/health/db")

    assert response.status_code == 503
    assert "refused" in response.json()["detail"]


def test_health_check_queue(client):
    service = MagicMock()
    service.get_queue_status.return_value = {
        "total_queued": 0,
        "total_active": 0,
        "total_active_sessions": 0,
        "by_type": {"com": {"queued": 0, "active": 0, "max_concurrent": 5}},
    }
    client.app.dependency_overrides[get_session_management_service] = lambda: service

    response = client.get("/health/queue")

    assert response.status_code == 200
    assert response.json()["by_type"]["com"]["max_concurrent"] == 5
