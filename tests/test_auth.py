from dataclasses import replace
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from conftest import PASSWORD, bearer, future
from main import create_app


def test_register_and_login(client):
    response = client.post("/auth/register", json={"name": "Alice", "email": "Alice@Example.com",
                                                   "password": PASSWORD})
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["userName"] == "Alice"
    assert body["data"]["email"] == "alice@example.com"
    assert body["data"]["token"]

    login = client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
    assert login.status_code == 200
    data = login.json()["data"]
    assert data["userId"] == body["data"]["userId"]
    assert data["refreshToken"]

    me = client.get("/users/me", headers=bearer(data["token"])).json()["data"]["user"]
    assert me["email"] == "alice@example.com"
    assert me["last_login"] is not None
    assert "password_hash" not in me


def test_register_rejects_duplicates_and_weak_passwords(client, make_user):
    make_user("Alice")
    duplicate = client.post("/auth/register", json={"name": "Alice", "email": "alice@example.com",
                                                    "password": PASSWORD})
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "Conflict"

    weak = client.post("/auth/register", json={"name": "Bob", "email": "bob@example.com", "password": "password"})
    assert weak.status_code == 400
    assert weak.json()["error"] == "Validation failed"

    bad_email = client.post("/auth/register", json={"name": "Bob", "email": "not-an-email", "password": PASSWORD})
    assert bad_email.status_code == 400


def test_login_with_wrong_password(client, make_user):
    make_user("Alice")
    response = client.post("/auth/login", json={"email": "alice@example.com", "password": "Wrong#123"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Access denied", "message": "Invalid email or password"}
    unknown = client.post("/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
    assert unknown.status_code == 401


def test_protected_routes_need_a_valid_token(client, app, make_user):
    alice = make_user("Alice")
    assert client.get("/users/me").status_code == 401
    assert client.get("/users/me", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/users/me", headers=bearer("not-a-jwt")).status_code == 401

    security = app.state.security
    expired = security.create_token(alice["id"], "access", timedelta(seconds=-10))
    response = client.get("/users/me", headers=bearer(expired))
    assert response.status_code == 401
    assert response.json()["message"] == "Token expired"

    refresh_token = security.create_refresh_token(alice["id"])
    assert client.get("/users/me", headers=bearer(refresh_token)).status_code == 401


def test_refresh_and_logout(client, make_user):
    make_user("Alice")
    tokens = client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD}).json()["data"]

    refreshed = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert refreshed.status_code == 200
    assert client.get("/users/me", headers=bearer(refreshed.json()["data"]["token"])).status_code == 200

    assert client.post("/auth/refresh", json={"refreshToken": tokens["token"]}).status_code == 401
    assert client.post("/auth/logout", headers=bearer(tokens["token"])).status_code == 200


def test_forgot_and_reset_password(client, app, make_user):
    alice = make_user("Alice")
    known = client.post("/auth/forgot-password", json={"email": "alice@example.com"})
    unknown = client.post("/auth/forgot-password", json={"email": "ghost@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json()["message"] == unknown.json()["message"]

    token = app.state.security.create_reset_token(alice["id"])
    reset = client.post("/auth/reset-password", json={"token": token, "newPassword": "Changed#456"})
    assert reset.status_code == 200
    assert client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD}).status_code == 401
    assert client.post("/auth/login", json={"email": "alice@example.com",
                                            "password": "Changed#456"}).status_code == 200

    access = app.state.security.create_access_token(alice["id"])
    assert client.post("/auth/reset-password",
                       json={"token": access, "newPassword": "Changed#789"}).status_code == 400


@pytest.fixture
def admin_client(settings):
    admin_settings = replace(settings, admin_email="admin@example.com", admin_password=PASSWORD)
    with TestClient(create_app(admin_settings)) as test_client:
        yield test_client


def test_suspended_account_is_locked_out(admin_client):
    admin = admin_client.post("/auth/login", json={"email": "admin@example.com", "password": PASSWORD}).json()["data"]
    user = admin_client.post("/auth/register", json={"name": "Bob", "email": "bob@example.com",
                                                     "password": PASSWORD}).json()["data"]

    assert admin_client.get("/admin/users", headers=bearer(user["token"])).status_code == 403
    response = admin_client.put(f"/admin/users/{user['userId']}/status", json={"status": "suspended"},
                                headers=bearer(admin["token"]))
    assert response.status_code == 200
    assert response.json()["data"]["user"]["status"] == "suspended"

    assert admin_client.get("/users/me", headers=bearer(user["token"])).status_code == 401
    login = admin_client.post("/auth/login", json={"email": "bob@example.com", "password": PASSWORD})
    assert login.status_code == 401
    assert login.json()["message"] == "Account is inactive or suspended"


def test_admin_endpoints(admin_client):
    admin = admin_client.post("/auth/login", json={"email": "admin@example.com", "password": PASSWORD}).json()["data"]
    headers = bearer(admin["token"])
    admin_client.post("/auth/register", json={"name": "Bob", "email": "bob@example.com", "password": PASSWORD})

    users = admin_client.get("/admin/users?search=bob", headers=headers).json()["data"]
    assert [u["email"] for u in users["users"]] == ["bob@example.com"]

    stats = admin_client.get("/admin/stats", headers=headers).json()["data"]["stats"]
    assert stats["user_count"] == 2
    assert stats["tag_count"] == 12

    own = admin_client.put(f"/admin/users/{admin['userId']}/status", json={"status": "inactive"}, headers=headers)
    assert own.status_code == 400
    assert admin_client.put("/admin/users/9999/status", json={"status": "inactive"},
                            headers=headers).status_code == 404


def test_admin_may_delete_tags_in_use(admin_client):
    admin = admin_client.post("/auth/login", json={"email": "admin@example.com", "password": PASSWORD}).json()["data"]
    bob = admin_client.post("/auth/register", json={"name": "Bob", "email": "bob@example.com",
                                                    "password": PASSWORD}).json()["data"]
    project = admin_client.post("/projects", headers=bearer(bob["token"]), json={
        "name": "Apollo", "deadline": future(), "priority": "medium", "status": "waiting",
    }).json()["data"]["project"]
    tag = admin_client.post("/tags", json={"tagName": "Legacy", "tagType": "project"},
                            headers=bearer(bob["token"])).json()["data"]["tag"]
    linked = admin_client.post(f"/projects/{project['id']}/tags", json={"tagId": tag["id"]},
                               headers=bearer(bob["token"]))
    assert linked.status_code == 200

    assert admin_client.delete(f"/tags/{tag['id']}", headers=bearer(admin["token"])).status_code == 200
    tags = admin_client.get(f"/projects/{project['id']}/tags", headers=bearer(bob["token"])).json()["data"]["tags"]
    assert tags == []
