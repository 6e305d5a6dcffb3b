def test_task_defaults_to_caller(client, alice, project):
    res = client.post("/api/tasks", json={"title": "Draft plan", "project": project["id"]}, headers=alice["headers"])
    assert res.status_code == 201
    assert res.json()["assignedTo"] == alice["id"]
    assert res.json()["completed"] is False


def test_task_listing_filters(client, alice, bob, project):
    client.post("/api/tasks", json={"title": "Mine", "project": project["id"]}, headers=alice["headers"])
    client.post(
        "/api/tasks", json={"title": "Bob's", "project": project["id"], "assignedTo": bob["id"]}, headers=alice["headers"]
    )
    client.post("/api/tasks", json={"title": "Elsewhere", "project": "other"}, headers=alice["headers"])

    by_project = client.get("/api/tasks", params={"project": project["id"]}, headers=alice["headers"]).json()
    assert sorted(t["title"] for t in by_project) == ["Bob's", "Mine"]

    both = client.get(
        "/api/tasks", params={"project": project["id"], "assignedTo": bob["id"]}, headers=alice["headers"]
    ).json()
    assert len(both) == 1
    assert both[0]["assignedTo"] == {"id": bob["id"], "name": "Bob Builder", "email": "bob@collabmate.io"}


def test_task_update_and_delete(client, alice, project):
    task_id = client.post("/api/tasks", json={"title": "Ship"}, headers=alice["headers"]).json()["id"]

    res = client.put(f"/api/tasks/{task_id}", json={"completed": True}, headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["completed"] is True
    assert res.json()["title"] == "Ship"

    assert client.delete(f"/api/tasks/{task_id}", headers=alice["headers"]).status_code == 200
    assert client.delete(f"/api/tasks/{task_id}", headers=alice["headers"]).status_code == 404
    assert client.put(f"/api/tasks/{task_id}", json={"title": "x"}, headers=alice["headers"]).status_code == 404
    assert client.delete("/api/tasks/garbage", headers=alice["headers"]).status_code == 404


def test_event_crud(client, alice, bob, project):
    res = client.post(
        "/api/events",
        json={
            "title": "Kickoff",
            "start": "2026-03-01T09:00:00Z",
            "end": "2026-03-01T10:00:00Z",
            "project": project["id"],
            "assignedTo": [bob["id"]],
            "type": "meeting",
        },
        headers=alice["headers"],
    )
    assert res.status_code == 201
    event = res.json()
    assert event["createdBy"] == alice["id"]
    assert event["start"] == "2026-03-01T09:00:00"

    listed = client.get("/api/events", params={"project": project["id"]}, headers=alice["headers"]).json()
    assert listed[0]["assignedTo"][0]["name"] == "Bob Builder"
    assert listed[0]["createdBy"]["id"] == alice["id"]

    res = client.put(f"/api/events/{event['id']}", json={"title": "Kickoff v2"}, headers=alice["headers"])
    assert res.json()["title"] == "Kickoff v2"

    res = client.put(f"/api/events/{event['id']}", json={"end": "2026-02-01T00:00:00Z"}, headers=alice["headers"])
    assert res.status_code == 400

    assert client.delete(f"/api/events/{event['id']}", headers=alice["headers"]).status_code == 200
    assert client.delete(f"/api/events/{event['id']}", headers=alice["headers"]).status_code == 404


def test_event_end_before_start(client, alice, project):
    res = client.post(
        "/api/events",
        json={"title": "Backwards", "start": "2026-03-02T00:00:00Z", "end": "2026-03-01T00:00:00Z", "project": project["id"]},
        headers=alice["headers"],
    )
    assert res.status_code == 400
