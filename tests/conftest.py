from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

PASSWORD = "Secret#123"


def future(days: int = 30) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        app_env="test",
        log_level="WARNING",
        upload_dir=str(tmp_path / "uploads"),
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(client):
    def _make(name: str = "Alice", email: str = None) -> dict:
        email = email or f"{name.lower()}@example.com"
        response = client.post("/auth/register", json={"name": name, "email": email, "password": PASSWORD})
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return {"id": data["userId"], "name": name, "email": email, "headers": bearer(data["token"])}
    return _make


@pytest.fixture
def make_project(client):
    def _make(owner: dict, **fields) -> dict:
        body = {"name": "Apollo", "deadline": future(), "priority": "medium", "status": "waiting"}
        body.update(fields)
        response = client.post("/projects", json=body, headers=owner["headers"])
        assert response.status_code == 201, response.text
        return response.json()["data"]["project"]
    return _make


@pytest.fixture
def add_member(client):
    def _add(project: dict, by: dict, user: dict, role: str = "member") -> dict:
        response = client.post(
            f"/projects/{project['id']}/members", json={"userId": user["id"], "role": role}, headers=by["headers"],
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]["member"]
    return _add
