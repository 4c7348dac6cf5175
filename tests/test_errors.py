from dataclasses import replace

from fastapi.testclient import TestClient

from main import create_app


def test_unknown_route(client):
    response = client.get("/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {
        "success": False, "error": "Not found", "message": "Can't find /does-not-exist on this server",
    }


def test_validation_error_envelope(client, make_user):
    alice = make_user("Alice")
    response = client.get("/projects/not-a-number", headers=alice["headers"])
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert body["details"][0]["field"] == "path.project_id"


def test_health(client):
    body = client.get("/health").json()
    assert body["success"] is True
    assert body["data"]["database"] == "connected"


def _broken_app(settings):
    app = create_app(settings)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    return app


def test_unexpected_error_in_production(settings):
    with TestClient(_broken_app(replace(settings, app_env="production")), raise_server_exceptions=False) as client:
        response = client.get("/boom")
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Server error", "message": "Internal server error"}


def test_unexpected_error_in_development(settings):
    with TestClient(_broken_app(replace(settings, app_env="development")), raise_server_exceptions=False) as client:
        response = client.get("/boom")
    assert response.status_code == 500
    body = response.json()
    assert body["message"] == "kaboom"
    assert any("RuntimeError" in line for line in body["details"])
