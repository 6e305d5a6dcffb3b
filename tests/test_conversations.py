def start(client, owner, *others, subject=None):
    body = {"participantIds": [o["id"] for o in others]}
    if subject is not None:
        body["subject"] = subject
    return client.post("/api/conversations", json=body, headers=owner["headers"])


def say(client, user, conversation_id, content):
    return client.post(
        "/api/messages", json={"conversationId": conversation_id, "content": content}, headers=user["headers"]
    )


def test_create_includes_caller(client, alice, bob):
    res = start(client, alice, bob)
    assert res.status_code == 201
    body = res.json()
    assert body["subject"] == "New Conversation"
    assert sorted(p["id"] for p in body["participants"]) == sorted([alice["id"], bob["id"]])


def test_create_needs_another_valid_participant(client, alice):
    assert start(client, alice).status_code == 400
    res = client.post(
        "/api/conversations", json={"participantIds": ["64b000000000000000000001"]}, headers=alice["headers"]
    )
    assert res.status_code == 400
    assert res.json() == {"error": "One or more participant IDs are invalid."}


def test_only_participants_see_conversation(client, alice, bob, carol):
    conversation_id = start(client, alice, bob, subject="Plans").json()["id"]
    say(client, bob, conversation_id, "First!")

    body = client.get(f"/api/conversations/{conversation_id}", headers=alice["headers"]).json()
    assert body["conversation"]["subject"] == "Plans"
    assert [m["content"] for m in body["messages"]] == ["First!"]

    assert client.get(f"/api/conversations/{conversation_id}", headers=carol["headers"]).status_code == 404
    assert say(client, carol, conversation_id, "let me in").status_code == 403

    listed = client.get("/api/conversations", headers=bob["headers"]).json()
    assert [c["id"] for c in listed] == [conversation_id]
    assert client.get("/api/conversations", headers=carol["headers"]).json() == []


def test_add_participants(client, alice, bob, carol):
    conversation_id = start(client, alice, bob).json()["id"]
    assert client.put(
        f"/api/conversations/{conversation_id}/participants",
        json={"newParticipantIds": [alice["id"]]},
        headers=carol["headers"],
    ).status_code == 403

    res = client.put(
        f"/api/conversations/{conversation_id}/participants",
        json={"newParticipantIds": [carol["id"], bob["id"]]},
        headers=alice["headers"],
    )
    assert res.status_code == 200
    assert len(res.json()["participants"]) == 3
    assert client.get(f"/api/conversations/{conversation_id}", headers=carol["headers"]).status_code == 200


def test_new_message_marks_summary_stale(client, db, fake_ai, alice, bob):
    conversation_id = start(client, alice, bob).json()["id"]
    say(client, alice, conversation_id, "Ship on Friday?")

    res = client.post("/api/ai/chat/summarize", json={"conversationId": conversation_id}, headers=bob["headers"])
    assert res.status_code == 200
    assert res.json()["summary"] == fake_ai.reply
    assert "Ship on Friday?" in fake_ai.prompts[-1]

    stored = client.get(f"/api/conversations/{conversation_id}", headers=alice["headers"]).json()["conversation"]
    assert stored["aiSummary"] == fake_ai.reply
    assert stored["aiSummaryNeedsUpdate"] is False
    assert stored["aiSummaryGeneratedAt"]

    say(client, bob, conversation_id, "Friday works")
    stored = client.get(f"/api/conversations/{conversation_id}", headers=alice["headers"]).json()["conversation"]
    assert stored["aiSummaryNeedsUpdate"] is True
    assert stored["aiSummary"] is None
    assert len(stored["messages"]) == 2

    usage = db["user"].find_one({"email": "bob@collabmate.io"})["aiUsage"]
    assert usage["tools"]["ConversationSummary"]["count"] == 1


def test_summarize_guards(client, fake_ai, alice, bob, carol):
    conversation_id = start(client, alice, bob).json()["id"]

    res = client.post("/api/ai/chat/summarize", json={}, headers=alice["headers"])
    assert res.status_code == 400
    res = client.post("/api/ai/chat/summarize", json={"conversationId": conversation_id}, headers=alice["headers"])
    assert res.status_code == 400
    assert res.json() == {"error": "No messages to summarize."}

    say(client, alice, conversation_id, "hello")
    res = client.post("/api/ai/chat/summarize", json={"conversationId": conversation_id}, headers=carol["headers"])
    assert res.status_code == 403
    res = client.post(
        "/api/ai/chat/summarize", json={"conversationId": "64b000000000000000000001"}, headers=alice["headers"]
    )
    assert res.status_code == 404

    fake_ai.fail = True
    res = client.post("/api/ai/chat/summarize", json={"conversationId": conversation_id}, headers=alice["headers"])
    assert res.status_code == 500
    assert res.json() == {"error": "Failed to generate conversation summary."}


def test_delete_conversation_removes_messages(client, db, alice, bob, carol):
    conversation_id = start(client, alice, bob).json()["id"]
    say(client, alice, conversation_id, "bye")

    assert client.delete(f"/api/messages/conversations/{conversation_id}", headers=carol["headers"]).status_code == 404
    assert client.delete(f"/api/messages/conversations/{conversation_id}", headers=bob["headers"]).status_code == 200
    assert db["conversation"].count_documents({}) == 0
    assert db["message"].count_documents({"conversation": conversation_id}) == 0
