import os

from conftest import PASSWORD


def test_update_profile(client, make_user):
    alice = make_user("Alice")
    make_user("Bob")

    response = client.put("/users/me", json={"name": "Alice Smith", "profileImage": "/uploads/a.png"},
                          headers=alice["headers"])
    assert response.status_code == 200
    user = response.json()["data"]["user"]
    assert user["name"] == "Alice Smith"
    assert user["profile_image"] == "/uploads/a.png"

    taken = client.put("/users/me", json={"email": "bob@example.com"}, headers=alice["headers"])
    assert taken.status_code == 400
    assert client.put("/users/me", json={"role": "admin"}, headers=alice["headers"]).status_code == 400
    assert client.put("/users/me", json={"email": None}, headers=alice["headers"]).status_code == 400
    assert client.put("/users/me", json={}, headers=alice["headers"]).status_code == 400


def test_search_users(client, make_user):
    alice = make_user("Alice")
    make_user("Bob")
    make_user("Bobby", email="robert@example.com")

    found = client.get("/users/search?q=bob", headers=alice["headers"]).json()["data"]
    assert sorted(u["name"] for u in found["users"]) == ["Bob", "Bobby"]
    assert found["count"] == 2

    nothing = client.get("/users/search?q=zzz", headers=alice["headers"])
    assert nothing.status_code == 200
    assert nothing.json()["data"] == {"users": [], "count": 0}

    assert client.get("/users/search?q=", headers=alice["headers"]).status_code == 400
    assert client.get("/users/search", headers=alice["headers"]).status_code == 400


def test_search_treats_wildcards_literally(client, make_user):
    alice = make_user("Alice")
    make_user("Bob")
    make_user("Bob_Two", email="bob.two@example.com")

    for term in ("%", "\\"):
        response = client.get("/users/search", params={"q": term}, headers=alice["headers"])
        assert response.json()["data"] == {"users": [], "count": 0}

    underscore = client.get("/users/search", params={"q": "_"}, headers=alice["headers"]).json()["data"]
    assert [u["name"] for u in underscore["users"]] == ["Bob_Two"]


def test_get_public_profile(client, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    profile = client.get(f"/users/{bob['id']}", headers=alice["headers"]).json()["data"]["user"]
    assert profile["name"] == "Bob"
    assert "role" not in profile
    assert client.get("/users/9999", headers=alice["headers"]).status_code == 404


def test_change_password(client, make_user):
    alice = make_user("Alice")
    wrong = client.put("/users/change-password", json={"currentPassword": "Wrong#123", "newPassword": "Next#4567"},
                       headers=alice["headers"])
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Current password is incorrect"

    changed = client.put("/users/change-password", json={"currentPassword": PASSWORD, "newPassword": "Next#4567"},
                         headers=alice["headers"])
    assert changed.status_code == 200
    login = client.post("/auth/login", json={"email": "alice@example.com", "password": "Next#4567"})
    assert login.status_code == 200


def test_upload_avatar(client, settings, make_user):
    alice = make_user("Alice")
    response = client.post("/users/me/avatar", files={"file": ("me.png", b"\x89PNG fake", "image/png")},
                           headers=alice["headers"])
    assert response.status_code == 200
    path = response.json()["data"]["user"]["profile_image"]
    assert path.startswith("/uploads/user_")
    assert os.path.exists(os.path.join(settings.upload_dir, os.path.basename(path)))
    assert client.get(path).content == b"\x89PNG fake"

    text = client.post("/users/me/avatar", files={"file": ("me.txt", b"hello", "text/plain")},
                       headers=alice["headers"])
    assert text.status_code == 400


def test_delete_account_cascades(client, make_user, make_project, add_member):
    alice, bob = make_user("Alice"), make_user("Bob")
    owned = make_project(alice, name="Alice's")
    shared = make_project(bob, name="Bob's")
    add_member(shared, bob, alice)
    add_member(owned, alice, bob)

    assert client.delete("/users/me", headers=alice["headers"]).status_code == 200
    assert client.get("/users/me", headers=alice["headers"]).status_code == 401
    assert client.get(f"/projects/{owned['id']}", headers=bob["headers"]).status_code == 404
    members = client.get(f"/projects/{shared['id']}/members", headers=bob["headers"]).json()["data"]["members"]
    assert [m["user_id"] for m in members] == [bob["id"]]
