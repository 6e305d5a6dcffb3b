def send(client, owner, project_id, receiver_id, **extra):
    return client.post(
        "/api/collaborations/request",
        json={"projectId": project_id, "receiverId": receiver_id, **extra},
        headers=owner["headers"],
    )


def test_owner_sends_request(client, alice, bob, project):
    res = send(client, alice, project["id"], bob["id"], message="Join the crew")
    assert res.status_code == 201
    body = res.json()
    assert body["message"] == "Collaboration request sent successfully"
    assert body["collaboration"]["status"] == "pending"
    assert body["collaboration"]["role"] == "editor"
    assert body["collaboration"]["sender"] == alice["id"]


def test_request_validation(client, alice, bob, project):
    res = client.post("/api/collaborations/request", json={"projectId": project["id"]}, headers=alice["headers"])
    assert res.status_code == 400

    assert send(client, alice, project["id"], bob["id"], role="boss").status_code == 400
    assert send(client, alice, project["id"], alice["id"]).status_code == 400
    assert send(client, alice, project["id"], "64b000000000000000000001").status_code == 404
    assert send(client, bob, project["id"], alice["id"]).status_code == 403
    assert send(client, alice, project["id"], bob["id"], message="x" * 501).status_code == 400


def test_duplicate_request_rejected(client, alice, bob, project):
    assert send(client, alice, project["id"], bob["id"]).status_code == 201
    res = send(client, alice, project["id"], bob["id"])
    assert res.status_code == 400
    assert res.json() == {"error": "Collaboration request already exists"}


def test_rejected_request_can_be_reopened(client, db, alice, bob, project):
    request_id = send(client, alice, project["id"], bob["id"]).json()["collaboration"]["id"]
    res = client.put(f"/api/collaborations/reject/{request_id}", headers=bob["headers"])
    assert res.json()["message"] == "Collaboration request rejected"

    res = send(client, alice, project["id"], bob["id"], role="viewer")
    assert res.status_code == 201
    assert res.json()["collaboration"]["id"] == request_id
    assert res.json()["collaboration"]["status"] == "pending"
    assert db["collaboration"].count_documents({}) == 1


def test_requests_list_has_both_directions(client, alice, bob, project):
    send(client, alice, project["id"], bob["id"])

    incoming = client.get("/api/collaborations/requests", headers=bob["headers"]).json()["requests"]
    assert len(incoming) == 1
    assert incoming[0]["direction"] == "incoming"
    assert incoming[0]["project"]["name"] == "Apollo"
    assert incoming[0]["sender"]["email"] == "alice@collabmate.io"

    outgoing = client.get("/api/collaborations/requests", headers=alice["headers"]).json()["requests"]
    assert [r["direction"] for r in outgoing] == ["outgoing"]


def test_requests_with_vanished_project_are_dropped(client, db, alice, bob, project):
    send(client, alice, project["id"], bob["id"])
    db["project"].delete_many({})
    assert client.get("/api/collaborations/requests", headers=bob["headers"]).json()["requests"] == []


def test_accept_adds_member_once(client, db, alice, bob, project):
    request_id = send(client, alice, project["id"], bob["id"], role="admin").json()["collaboration"]["id"]

    assert client.put(f"/api/collaborations/accept/{request_id}", headers=alice["headers"]).status_code == 404

    res = client.put(f"/api/collaborations/accept/{request_id}", headers=bob["headers"])
    assert res.status_code == 200
    assert res.json()["message"] == "Collaboration request accepted"

    stored = db["project"].find_one({})
    assert stored["collaborators"] == [{"user": bob["id"], "role": "admin"}]

    # second accept finds no pending request
    assert client.put(f"/api/collaborations/accept/{request_id}", headers=bob["headers"]).status_code == 404
    assert len(db["project"].find_one({})["collaborators"]) == 1


def test_project_collaborators_listing(client, alice, bob, carol, project):
    accepted = send(client, alice, project["id"], bob["id"]).json()["collaboration"]["id"]
    send(client, alice, project["id"], carol["id"])
    client.put(f"/api/collaborations/accept/{accepted}", headers=bob["headers"])

    listed = client.get(f"/api/collaborations/project/{project['id']}", headers=alice["headers"]).json()
    assert [c["receiver"]["id"] for c in listed["collaborators"]] == [bob["id"]]


def test_owner_removes_collaborator(client, db, alice, bob, project):
    request_id = send(client, alice, project["id"], bob["id"]).json()["collaboration"]["id"]
    client.put(f"/api/collaborations/accept/{request_id}", headers=bob["headers"])

    assert client.delete(f"/api/collaborations/remove/{request_id}", headers=bob["headers"]).status_code == 403
    res = client.delete(f"/api/collaborations/remove/{request_id}", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["collaboration"]["status"] == "removed"
    assert db["project"].find_one({})["collaborators"] == []

    # removed members lose access and the request disappears from the list
    assert client.get(f"/api/projects/{project['id']}", headers=bob["headers"]).status_code == 403
    assert client.get("/api/collaborations/requests", headers=bob["headers"]).json()["requests"] == []
