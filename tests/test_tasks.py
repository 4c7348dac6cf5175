from datetime import date, timedelta

import pytest


@pytest.fixture
def team(client, make_user, make_project, add_member):
    alice, bob, eve = make_user("Alice"), make_user("Bob"), make_user("Eve")
    project = make_project(alice)
    add_member(project, alice, bob)
    return {"alice": alice, "bob": bob, "eve": eve, "project": project}


def new_task(client, team, by="alice", **fields):
    body = {"title": "Draft plan"}
    body.update(fields)
    response = client.post(f"/projects/{team['project']['id']}/tasks", json=body, headers=team[by]["headers"])
    assert response.status_code == 201, response.text
    return response.json()["data"]["task"]


def test_create_task_defaults(client, team):
    task = new_task(client, team, by="bob", description="First pass", dueDate="2030-05-01")
    assert task["status"] == "pending"
    assert task["priority"] == "medium"
    assert task["created_by"] == team["bob"]["id"]
    assert task["project_name"] == "Apollo"
    assert task["due_date"] == "2030-05-01"
    assert task["completed_at"] is None
    assert task["assignee_id"] is None


def test_create_task_requires_membership_and_member_assignee(client, team):
    url = f"/projects/{team['project']['id']}/tasks"
    assert client.post(url, json={"title": "Sneaky"}, headers=team["eve"]["headers"]).status_code == 404
    response = client.post(url, json={"title": "Outsourced", "assigneeId": team["eve"]["id"]},
                           headers=team["alice"]["headers"])
    assert response.status_code == 400
    assert response.json()["message"] == "Assignee is not a project member"
    assert client.post(url, json={"title": "ab"}, headers=team["alice"]["headers"]).status_code == 400


def test_completion_timestamp_follows_status(client, team):
    task = new_task(client, team)
    url = f"/tasks/{task['id']}/status"
    headers = team["bob"]["headers"]

    completed = client.put(url, json={"status": "completed"}, headers=headers).json()["data"]["task"]
    assert completed["status"] == "completed"
    assert completed["completed_at"] is not None

    again = client.put(url, json={"status": "completed"}, headers=headers).json()["data"]["task"]
    assert again["completed_at"] == completed["completed_at"]

    reopened = client.put(url, json={"status": "in_progress"}, headers=headers).json()["data"]["task"]
    assert reopened["completed_at"] is None

    assert client.put(url, json={"status": "done"}, headers=headers).status_code == 400


def test_pending_completed_pending_round_trip(client, team):
    task = new_task(client, team)
    url = f"/tasks/{task['id']}"
    headers = team["alice"]["headers"]
    assert task["status"] == "pending"

    done = client.put(url, json={"status": "completed"}, headers=headers).json()["data"]["task"]
    assert done["status"] == "completed"
    assert done["completed_at"] is not None

    back = client.put(url, json={"status": "pending"}, headers=headers).json()["data"]["task"]
    assert back["status"] == "pending"
    assert back["completed_at"] is None
    fetched = client.get(url, headers=headers).json()["data"]["task"]
    assert (fetched["status"], fetched["completed_at"]) == ("pending", None)


def test_task_created_completed_is_stamped(client, team):
    task = new_task(client, team, status="completed")
    assert task["completed_at"] is not None


def test_update_task(client, team):
    task = new_task(client, team)
    url = f"/tasks/{task['id']}"
    headers = team["bob"]["headers"]

    response = client.put(url, json={"title": "Final plan", "priority": "urgent", "dueDate": None}, headers=headers)
    assert response.status_code == 200
    updated = response.json()["data"]["task"]
    assert updated["title"] == "Final plan"
    assert updated["priority"] == "urgent"

    assert client.put(url, json={"title": None}, headers=headers).status_code == 400
    assert client.put(url, json={"project_id": 2}, headers=headers).status_code == 400
    assert client.put(url, json={"title": "Hidden"}, headers=team["eve"]["headers"]).status_code == 404


def test_assign_and_unassign(client, team):
    task = new_task(client, team)
    url = f"/tasks/{task['id']}/assign"

    assigned = client.put(url, json={"assigneeId": team["bob"]["id"]}, headers=team["alice"]["headers"])
    assert assigned.status_code == 200
    data = assigned.json()["data"]["task"]
    assert data["assignee_id"] == team["bob"]["id"]
    assert data["assignee_name"] == "Bob"
    assert data["assignee_email"] == "bob@example.com"

    mine = client.get("/tasks", headers=team["bob"]["headers"]).json()["data"]
    assert [t["id"] for t in mine["tasks"]] == [task["id"]]

    assert client.put(url, json={"assigneeId": team["eve"]["id"]},
                      headers=team["alice"]["headers"]).status_code == 400

    unassigned = client.put(url, json={"assigneeId": None}, headers=team["alice"]["headers"])
    assert unassigned.json()["data"]["task"]["assignee_id"] is None
    assert client.get("/tasks", headers=team["bob"]["headers"]).json()["data"]["count"] == 0


def test_project_task_filters(client, team):
    new_task(client, team, title="Design API", priority="high", assigneeId=team["bob"]["id"])
    new_task(client, team, title="Write tests", priority="low")
    url = f"/projects/{team['project']['id']}/tasks"
    headers = team["alice"]["headers"]

    assert client.get(url, headers=headers).json()["data"]["count"] == 2
    high = client.get(f"{url}?priority=high", headers=headers).json()["data"]["tasks"]
    assert [t["title"] for t in high] == ["Design API"]
    bobs = client.get(f"{url}?assigneeId={team['bob']['id']}", headers=headers).json()["data"]["tasks"]
    assert [t["title"] for t in bobs] == ["Design API"]
    found = client.get(f"{url}?search=tests", headers=headers).json()["data"]["tasks"]
    assert [t["title"] for t in found] == ["Write tests"]
    wildcard = client.get(url, params={"search": "%"}, headers=headers).json()["data"]
    assert wildcard["count"] == 0


def test_bulk_update_is_all_or_nothing(client, team, make_project):
    first, second = new_task(client, team), new_task(client, team, title="Second task")
    foreign_project = make_project(team["eve"], name="Secret")
    foreign = client.post(f"/projects/{foreign_project['id']}/tasks", json={"title": "Private"},
                          headers=team["eve"]["headers"]).json()["data"]["task"]

    denied = client.post("/tasks/bulk-update", headers=team["bob"]["headers"], json={
        "taskIds": [first["id"], foreign["id"]], "updates": {"status": "completed"},
    })
    assert denied.status_code == 403
    untouched = client.get(f"/tasks/{first['id']}", headers=team["bob"]["headers"]).json()["data"]["task"]
    assert untouched["status"] == "pending"

    response = client.post("/tasks/bulk-update", headers=team["bob"]["headers"], json={
        "taskIds": [first["id"], second["id"]],
        "updates": {"status": "completed", "priority": "high", "assigneeId": team["alice"]["id"]},
    })
    assert response.status_code == 200
    assert response.json()["data"]["updatedCount"] == 2
    for task_id in (first["id"], second["id"]):
        task = client.get(f"/tasks/{task_id}", headers=team["bob"]["headers"]).json()["data"]["task"]
        assert task["status"] == "completed"
        assert task["completed_at"] is not None
        assert task["priority"] == "high"
        assert task["assignee_id"] == team["alice"]["id"]

    invalid = client.post("/tasks/bulk-update", headers=team["bob"]["headers"],
                          json={"taskIds": [first["id"]], "updates": {"title": "Nope"}})
    assert invalid.status_code == 400
    empty = client.post("/tasks/bulk-update", headers=team["bob"]["headers"],
                        json={"taskIds": [], "updates": {"status": "pending"}})
    assert empty.status_code == 400


def test_overdue_and_due_soon(client, team):
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    in_three_days = (date.today() + timedelta(days=3)).isoformat()
    late = new_task(client, team, title="Late report", dueDate=yesterday)
    new_task(client, team, title="Late but done", dueDate=yesterday, status="completed")
    soon = new_task(client, team, title="Soon report", dueDate=in_three_days)
    new_task(client, team, title="Someday", dueDate="2099-01-01")
    headers = team["bob"]["headers"]

    overdue = client.get("/tasks/overdue", headers=headers).json()["data"]["tasks"]
    assert [t["id"] for t in overdue] == [late["id"]]
    due_soon = client.get("/tasks/due-soon", headers=headers).json()["data"]["tasks"]
    assert [t["id"] for t in due_soon] == [soon["id"]]
    assert client.get("/tasks/overdue", headers=team["eve"]["headers"]).json()["data"]["count"] == 0


def test_delete_task(client, team):
    task = new_task(client, team)
    url = f"/tasks/{task['id']}"
    assert client.delete(url, headers=team["eve"]["headers"]).status_code == 404
    assert client.delete(url, headers=team["bob"]["headers"]).status_code == 200
    assert client.get(url, headers=team["alice"]["headers"]).status_code == 404


def test_task_tags_on_create(client, team):
    task = new_task(client, team, tags=["Bug Fix", " Spike ", "Bug Fix"])
    assert sorted(t["name"] for t in task["tags"]) == ["Bug Fix", "Spike"]
    assert all(t["tag_type"] == "task" for t in task["tags"])

    spike = client.get("/tags?type=task&search=Spike", headers=team["alice"]["headers"]).json()["data"]["tags"]
    assert [t["task_usage_count"] for t in spike] == [1]
