from ai import build_ai_client
from main import app
from suggestions import FALLBACK_SUGGESTIONS, parse_ideas


def test_parse_ideas_strips_numbering():
    assert parse_ideas("1. One idea\n\n2.  Two ideas\nThree") == ["One idea", "Two ideas", "Three"]


def test_generated_ideas(client, fake_ai, alice):
    res = client.get("/api/suggestions/ai", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["suggestions"] == [
        "Build a shared whiteboard",
        "Make a habit tracker",
        "Write a CLI budget tool",
    ]


def test_generated_ideas_fall_back(client, fake_ai, alice):
    fake_ai.fail = True
    res = client.get("/api/suggestions/ai", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["suggestions"] == FALLBACK_SUGGESTIONS


def test_save_list_and_remove(client, alice, bob):
    res = client.post("/api/suggestions/save", json={"suggestion": "  Build a bot  "}, headers=alice["headers"])
    assert res.status_code == 201
    assert res.json()["suggestion"]["content"] == "Build a bot"

    res = client.post("/api/suggestions/save", json={"suggestion": "Build a bot"}, headers=alice["headers"])
    assert res.status_code == 400
    assert res.json() == {"error": "Suggestion already saved"}

    assert client.get("/api/suggestions/saved", headers=alice["headers"]).json() == {"suggestions": ["Build a bot"]}
    assert client.get("/api/suggestions/saved", headers=bob["headers"]).json() == {"suggestions": []}

    res = client.request("DELETE", "/api/suggestions/saved", json={"suggestion": "Build a bot"}, headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["suggestion"]["status"] == "archived"
    assert client.get("/api/suggestions/saved", headers=alice["headers"]).json() == {"suggestions": []}

    res = client.request("DELETE", "/api/suggestions/saved", json={"suggestion": "Build a bot"}, headers=alice["headers"])
    assert res.status_code == 404


def test_archived_suggestion_can_be_saved_again(client, db, alice):
    client.post("/api/suggestions/save", json={"suggestion": "Learn Rust"}, headers=alice["headers"])
    client.request("DELETE", "/api/suggestions/saved", json={"suggestion": "Learn Rust"}, headers=alice["headers"])

    res = client.post("/api/suggestions/save", json={"suggestion": "Learn Rust"}, headers=alice["headers"])
    assert res.status_code == 201
    assert res.json()["suggestion"]["status"] == "active"
    assert db["suggestion"].count_documents({}) == 1


def test_save_rejects_bad_input(client, alice):
    for payload in ({}, {"suggestion": ""}, {"suggestion": "   "}, {"suggestion": 42}):
        res = client.post("/api/suggestions/save", json=payload, headers=alice["headers"])
        assert res.status_code == 400, payload


def test_ai_get_suggestions(client, db, fake_ai, alice):
    res = client.post(
        "/api/ai/get-suggestions",
        json={"skills": [{"name": "Python", "level": "advanced"}, "SQL"], "interests": ["robotics"]},
        headers=alice["headers"],
    )
    assert res.status_code == 200
    assert res.json() == {"suggestions": fake_ai.reply}
    assert "Python (advanced), SQL" in fake_ai.prompts[-1]
    assert "robotics" in fake_ai.prompts[-1]

    usage = db["user"].find_one({"email": "alice@collabmate.io"})["aiUsage"]
    assert usage["totalRequests"] == 1
    assert usage["tools"]["Suggestions"]["count"] == 1


def test_ai_get_suggestions_requires_lists(client, alice):
    res = client.post("/api/ai/get-suggestions", json={"skills": "Python", "interests": []}, headers=alice["headers"])
    assert res.status_code == 400
    res = client.post("/api/ai/get-suggestions", json={"skills": []}, headers=alice["headers"])
    assert res.status_code == 400


def test_ai_unconfigured_is_503(client, alice):
    app.dependency_overrides[build_ai_client] = lambda: None
    res = client.post("/api/ai/get-suggestions", json={"skills": [], "interests": []}, headers=alice["headers"])
    assert res.status_code == 503
    # idea generation still answers with the canned list
    res = client.get("/api/suggestions/ai", headers=alice["headers"])
    assert res.json()["suggestions"] == FALLBACK_SUGGESTIONS
