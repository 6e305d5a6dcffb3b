def invite_and_accept(client, owner, member, project_id, role="editor"):
    res = client.post(
        "/api/collaborations/request",
        json={"projectId": project_id, "receiverId": member["id"], "role": role},
        headers=owner["headers"],
    )
    assert res.status_code == 201, res.text
    request_id = res.json()["collaboration"]["id"]
    res = client.put(f"/api/collaborations/accept/{request_id}", headers=member["headers"])
    assert res.status_code == 200, res.text
    return request_id


def test_create_project_defaults(client, alice):
    res = client.post("/api/projects", json={"title": "Zephyr", "description": "Wind tunnel"}, headers=alice["headers"])
    assert res.status_code == 201
    body = res.json()
    assert body["name"] == "Zephyr"
    assert body["title"] == "Zephyr"
    assert body["category"] == "General"
    assert body["status"] == "active"
    assert body["owner"] == alice["id"]
    assert body["userRole"] == "owner"


def test_create_project_requires_name_and_description(client, alice):
    res = client.post("/api/projects", json={"name": "  ", "description": "x"}, headers=alice["headers"])
    assert res.status_code == 400
    res = client.post("/api/projects", json={"name": "Only name"}, headers=alice["headers"])
    assert res.status_code == 400


def test_list_contains_owned_and_shared(client, alice, bob, project):
    res = client.post("/api/projects", json={"name": "Bob's", "description": "Side quest"}, headers=bob["headers"])
    assert res.status_code == 201
    request_id = invite_and_accept(client, alice, bob, project["id"], role="viewer")

    listed = client.get("/api/projects", headers=bob["headers"]).json()
    roles = {p["name"]: p["userRole"] for p in listed}
    assert roles == {"Bob's": "owner", "Apollo": "viewer"}
    shared = next(p for p in listed if p["name"] == "Apollo")
    assert shared["collaborationId"] == request_id


def test_get_project_membership(client, alice, bob, carol, project):
    assert client.get(f"/api/projects/{project['id']}", headers=bob["headers"]).status_code == 403

    invite_and_accept(client, alice, bob, project["id"])
    body = client.get(f"/api/projects/{project['id']}", headers=bob["headers"]).json()
    assert body["userRole"] == "editor"
    assert body["owner"]["id"] == alice["id"]
    assert body["collaborators"] == [
        {"user": {"id": bob["id"], "name": "Bob Builder", "email": "bob@collabmate.io"}, "role": "editor"}
    ]

    assert client.get(f"/api/projects/{project['id']}", headers=carol["headers"]).status_code == 403


def test_get_missing_project(client, alice):
    assert client.get("/api/projects/64b000000000000000000001", headers=alice["headers"]).status_code == 404
    res = client.get("/api/projects/not-an-id", headers=alice["headers"])
    assert res.status_code == 400
    assert res.json() == {"error": "Invalid id format"}


def test_owner_updates_project(client, alice, bob, project):
    res = client.patch(
        f"/api/projects/{project['id']}", json={"status": "completed", "progress": 100}, headers=alice["headers"]
    )
    assert res.status_code == 200
    assert res.json()["status"] == "completed"
    assert res.json()["progress"] == 100

    res = client.patch(f"/api/projects/{project['id']}", json={"status": "lost"}, headers=alice["headers"])
    assert res.status_code == 400

    res = client.patch(f"/api/projects/{project['id']}", json={"name": "Hijack"}, headers=bob["headers"])
    assert res.status_code == 403


def test_delete_cascades(client, db, alice, bob, project):
    invite_and_accept(client, alice, bob, project["id"])
    client.post("/api/tasks", json={"title": "Fuel", "project": project["id"]}, headers=alice["headers"])
    client.post(
        "/api/events",
        json={"title": "Launch", "start": "2026-01-01T10:00:00Z", "end": "2026-01-01T11:00:00Z", "project": project["id"]},
        headers=alice["headers"],
    )

    assert client.delete(f"/api/projects/{project['id']}", headers=bob["headers"]).status_code == 403
    res = client.delete(f"/api/projects/{project['id']}", headers=alice["headers"])
    assert res.status_code == 200

    assert db["project"].count_documents({}) == 0
    assert db["collaboration"].count_documents({"project": project["id"]}) == 0
    assert db["task"].count_documents({"project": project["id"]}) == 0
    assert db["event"].count_documents({"project": project["id"]}) == 0
