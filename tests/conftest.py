import os
from urllib.parse import urlsplit

import mongomock
import pytest
import requests
from requests.adapters import BaseAdapter
from fastapi.testclient import TestClient
from requests.structures import CaseInsensitiveDict

# read by auth at import time; HS256 wants at least 32 bytes
os.environ["JWT_SECRET"] = "collabmate-test-signing-secret-0123456789"

import uploads
from ai import AIError, build_ai_client
from client import ApiClient, SessionStore
from create_admin import create_admin
from database import ensure_indexes, get_db
from main import app

PASSWORD = "Secret@123"


class FakeAI:
    """Stands in for the Gemini client; records prompts and returns canned text."""

    def __init__(self):
        self.prompts = []
        self.reply = "1. Build a shared whiteboard\n2. Make a habit tracker\n3. Write a CLI budget tool"
        self.fail = False

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.fail:
            raise AIError("provider down")
        return self.reply


class InProcessAdapter(BaseAdapter):
    """requests transport that hands every request to a FastAPI TestClient."""

    def __init__(self, test_client):
        super().__init__()
        self.test_client = test_client

    def send(self, request, **kwargs):
        url = urlsplit(request.url)
        path = url.path + (f"?{url.query}" if url.query else "")
        headers = {k: v for k, v in request.headers.items() if k.lower() != "content-length"}
        body = request.body.encode("utf-8") if isinstance(request.body, str) else request.body
        upstream = self.test_client.request(request.method, path, headers=headers, content=body)

        response = requests.Response()
        response.status_code = upstream.status_code
        response._content = upstream.content
        response.headers = CaseInsensitiveDict(upstream.headers)
        response.encoding = "utf-8"
        response.url = request.url
        response.request = request
        return response

    def close(self):
        pass


@pytest.fixture
def db():
    database = mongomock.MongoClient().collabmate_test
    ensure_indexes(database)
    return database


@pytest.fixture
def fake_ai():
    return FakeAI()


@pytest.fixture
def client(db, fake_ai, tmp_path, monkeypatch):
    monkeypatch.setattr(uploads, "UPLOAD_DIR", str(tmp_path))
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[build_ai_client] = lambda: fake_ai
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register(client, name, email, password=PASSWORD):
    res = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert res.status_code == 201, res.text
    data = res.json()
    return {
        "id": data["user"]["id"],
        "token": data["token"],
        "headers": {"Authorization": f"Bearer {data['token']}"},
        "email": email,
    }


@pytest.fixture
def alice(client):
    return register(client, "Alice Owner", "alice@collabmate.io")


@pytest.fixture
def bob(client):
    return register(client, "Bob Builder", "bob@collabmate.io")


@pytest.fixture
def carol(client):
    return register(client, "Carol Critic", "carol@collabmate.io")


@pytest.fixture
def admin(client, db):
    admin_id = create_admin(db, name="Root Admin", email="root@collabmate.io", password="Admin@123")
    res = client.post("/api/auth/login", json={"email": "root@collabmate.io", "password": "Admin@123"})
    assert res.status_code == 200, res.text
    token = res.json()["token"]
    return {"id": admin_id, "token": token, "headers": {"Authorization": f"Bearer {token}"}}


@pytest.fixture
def project(client, alice):
    res = client.post(
        "/api/projects",
        json={"name": "Apollo", "description": "Moon planning board", "category": "Research"},
        headers=alice["headers"],
    )
    assert res.status_code == 201, res.text
    return res.json()


@pytest.fixture
def make_user(client):
    def _make(name, email, password=PASSWORD):
        return register(client, name, email, password)
    return _make


@pytest.fixture
def redirects():
    return []


@pytest.fixture
def api(client, redirects):
    """An ApiClient whose HTTP traffic is served by the in-process app."""
    session = requests.Session()
    session.mount("http://testserver", InProcessAdapter(client))
    return ApiClient("http://testserver/api", SessionStore(), on_unauthorized=redirects.append, session=session)
