from fastapi.testclient import TestClient

from solarcalc.api.main import create_app


def test_routes_mounted_under_api_v1():
    app = create_app()
    paths = {route.path for route in app.routes}

    assert "/api/v1/health" in paths
    assert "/api/v1/sessions" in paths
    assert "/api/v1/queue/{operation_type}" in paths
    assert "/api/v1/operations/{request_id}" in paths


def test_basic_health_without_lifespan():
    client = TestClient(create_app())

    response = client.get("/api/v1/health", headers={"X-Correlation-ID": "abc"})

    assert response.status_code == 200
    assert response.headers["X-Correlation-ID"] == "abc"
