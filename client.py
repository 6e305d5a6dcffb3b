"""
Python client for the CollabMate API.

`ApiClient` is the transport: it attaches the bearer token kept in a
`SessionStore`, turns error responses into `ApiError` and logs the session
out on any 401. The remaining classes hold the state of the dashboard
screens (projects, conversations, collaboration requests and the admin
tables) on top of it.
"""
import os
import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import requests

from validation import login_errors, registration_errors

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = os.getenv("COLLABMATE_API_URL", "http://localhost:8000/api")
DEFAULT_TIMEOUT_SECONDS = 30
LOGIN_ROUTE = "/login"
ADMIN_ROUTE = "/admin"
USER_ROUTE = "/dashboard/projects"


class ApiError(Exception):
    def __init__(self, status: Optional[int], message: str, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.payload = payload


class ValidationFailed(Exception):
    """Form input was rejected locally; no request was sent."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__(" ".join(errors.values()))
        self.errors = errors


class GuardRejected(Exception):
    """An admin action was refused before reaching the server."""


class SessionStore:
    """The persisted login: token, user (JSON text), role, email and name.

    Kept in memory, or in a JSON file when `path` is given.
    """

    KEYS = ("token", "user", "role", "email", "name")

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._data: Dict[str, str] = {}
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as fh:
                try:
                    loaded = json.load(fh)
                except ValueError:
                    logger.warning("Ignoring unreadable session file %s", path)
                    loaded = {}
            self._data = {k: v for k, v in loaded.items() if k in self.KEYS and isinstance(v, str)}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._save()

    def remove(self, key: str) -> None:
        self._data.pop(key, None)
        self._save()

    def clear(self) -> None:
        self._data = {}
        self._save()

    @property
    def token(self) -> Optional[str]:
        return self.get("token")

    @property
    def user(self) -> Optional[dict]:
        raw = self.get("user")
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except ValueError:
            logger.error("Stored user data is not valid JSON")
            return None
        return user if isinstance(user, dict) else None

    def _save(self) -> None:
        if not self.path:
            return
        with open(self.path, "w", encoding="utf-8") as fh:
            json.dump(self._data, fh)


class ApiClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        store: Optional[SessionStore] = None,
        on_unauthorized: Optional[Callable[[str], None]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.store = store if store is not None else SessionStore()
        self.on_unauthorized = on_unauthorized
        self.session = session or requests.Session()
        self.timeout = timeout

    def auth_token(self) -> Optional[str]:
        """The dedicated token first, then one embedded in the stored user."""
        token = self.store.token
        if not token:
            user = self.store.user
            token = user.get("token") if user else None
        return token or None

    def request(self, method: str, path: str, **kwargs) -> Any:
        headers = dict(kwargs.pop("headers", None) or {})
        token = self.auth_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.debug("No auth token for %s %s", method, path)

        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Request %s %s failed: %s", method, url, e)
            raise ApiError(None, "Network error. Please check your connection.") from e

        try:
            body: Any = response.json()
        except ValueError:
            body = {"raw": response.text} if response.text else None

        if response.status_code == 401:
            logger.info("Unauthorized response for %s %s, clearing session", method, path)
            self.store.clear()
            if self.on_unauthorized:
                self.on_unauthorized(LOGIN_ROUTE)

        if response.status_code >= 400:
            message = None
            if isinstance(body, dict):
                message = body.get("error") or body.get("message")
            raise ApiError(response.status_code, message or f"Request failed with status {response.status_code}", body)
        return body

    def get(self, path: str, **kwargs) -> Any:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> Any:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs) -> Any:
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs) -> Any:
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs) -> Any:
        return self.request("DELETE", path, **kwargs)


class AuthService:
    def __init__(self, api: ApiClient):
        self.api = api

    def _persist(self, data: dict) -> str:
        user = data.get("user") or {}
        store = self.api.store
        store.set("token", data["token"])
        store.set("user", json.dumps(user))
        store.set("role", user.get("role", "user"))
        store.set("email", user.get("email", ""))
        store.set("name", user.get("name", ""))
        return ADMIN_ROUTE if user.get("role") == "admin" else USER_ROUTE

    def login(self, email: str, password: str) -> str:
        """Sign in and return the route to land on."""
        errors = login_errors(email, password)
        if errors:
            raise ValidationFailed(errors)
        data = self.api.post("/auth/login", json={"email": email.strip(), "password": password})
        return self._persist(data)

    def register(self, name: str, email: str, password: str) -> str:
        errors = registration_errors(name, email, password)
        if errors:
            raise ValidationFailed(errors)
        data = self.api.post("/auth/register", json={"name": name.strip(), "email": email.strip(), "password": password})
        return self._persist(data)

    def logout(self) -> str:
        self.api.store.clear()
        return LOGIN_ROUTE


PROJECT_TABS = ("all", "owned", "shared")


def filter_projects(projects: List[dict], search: str = "", tab: str = "all") -> List[dict]:
    term = (search or "").lower()
    matched = [
        p for p in projects
        if term in (p.get("title") or p.get("name") or "").lower() or term in (p.get("description") or "").lower()
    ]
    if tab == "owned":
        return [p for p in matched if p.get("userRole") == "owner"]
    if tab == "shared":
        return [p for p in matched if p.get("userRole") and p.get("userRole") != "owner"]
    return matched


class ConversationView:
    """One open conversation with its cached AI summary."""

    def __init__(self, api: ApiClient, conversation_id: str):
        self.api = api
        self.conversation_id = conversation_id
        self.conversation: Optional[dict] = None
        self.messages: List[dict] = []
        self.summary: Optional[str] = None
        self.summary_generated_at: Optional[str] = None
        self.summary_stale = False
        self.show_summary = False

    def load(self) -> "ConversationView":
        data = self.api.get(f"/conversations/{self.conversation_id}")
        self.conversation = data["conversation"]
        self.messages = data.get("messages", [])
        self.summary = self.conversation.get("aiSummary") or None
        self.summary_generated_at = self.conversation.get("aiSummaryGeneratedAt")
        self.summary_stale = bool(self.conversation.get("aiSummaryNeedsUpdate"))
        self.show_summary = bool(self.summary) and not self.summary_stale
        return self

    def send(self, content: str) -> dict:
        message = self.api.post("/messages", json={"conversationId": self.conversation_id, "content": content})
        self.messages.append(message)
        self.summary = None
        self.summary_stale = True
        self.show_summary = False
        return message

    def summarize(self) -> str:
        data = self.api.post("/ai/chat/summarize", json={"conversationId": self.conversation_id})
        self.summary = data["summary"]
        self.summary_generated_at = data.get("generatedAt")
        self.summary_stale = False
        self.show_summary = True
        return self.summary


class CollaborationsView:
    def __init__(self, api: ApiClient):
        self.api = api
        self.requests: List[dict] = []

    def load(self) -> "CollaborationsView":
        self.requests = self.api.get("/collaborations/requests").get("requests", [])
        return self

    @property
    def pending(self) -> List[dict]:
        return [r for r in self.requests if r.get("status") == "pending"]

    @property
    def accepted(self) -> List[dict]:
        return [r for r in self.requests if r.get("status") == "accepted"]

    def accept(self, request_id: str) -> dict:
        result = self.api.put(f"/collaborations/accept/{request_id}")
        self.load()
        return result

    def reject(self, request_id: str) -> dict:
        result = self.api.put(f"/collaborations/reject/{request_id}")
        self.load()
        return result


class PaginatedTable:
    """A server-paginated admin table. Every mutation is followed by a re-fetch."""

    def __init__(self, api: ApiClient, path: str, key: str, limit: int = 10):
        self.api = api
        self.path = path
        self.key = key
        self.page = 1
        self.limit = limit
        self.search = ""
        self.sort = "newest"
        self.filters: Dict[str, str] = {}
        self.items: List[dict] = []
        self.total = 0
        self.total_pages = 0

    def params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": self.page, "limit": self.limit, "sort": self.sort}
        if self.search:
            params["search"] = self.search
        params.update({k: v for k, v in self.filters.items() if v})
        return params

    def refresh(self) -> List[dict]:
        data = self.api.get(self.path, params=self.params())
        self.items = data.get(self.key, [])
        self.total = data.get("total", len(self.items))
        self.total_pages = data.get("totalPages", 0)
        return self.items

    def set_search(self, search: str) -> List[dict]:
        self.search = search
        self.page = 1
        return self.refresh()

    def set_filter(self, name: str, value: str) -> List[dict]:
        self.filters[name] = value
        self.page = 1
        return self.refresh()

    def go_to(self, page: int) -> List[dict]:
        self.page = max(1, page)
        return self.refresh()

    def act(self, method: str, path: str, **kwargs) -> Any:
        result = self.api.request(method, path, **kwargs)
        self.refresh()
        return result


class AdminUsersTable(PaginatedTable):
    LAST_ADMIN_MESSAGE = "Cannot deactivate the last active admin user. This would lock the system!"
    LAST_ADMIN_DELETE_MESSAGE = "Cannot delete the last active admin user. This would lock the system!"

    def __init__(self, api: ApiClient, limit: int = 10):
        super().__init__(api, "/admin/user-analytics", "users", limit=limit)

    def _guard(self, user_id: str, message: str) -> None:
        # only the loaded page is consulted here; the server re-checks globally
        target = next((u for u in self.items if u.get("id") == user_id), None)
        if not target or target.get("role") != "admin":
            return
        active_admins = [u for u in self.items if u.get("role") == "admin" and u.get("active") is True]
        if len(active_admins) <= 1:
            raise GuardRejected(message)

    def set_active(self, user_id: str, active: bool) -> Any:
        if not active:
            self._guard(user_id, self.LAST_ADMIN_MESSAGE)
        action = "activate" if active else "deactivate"
        return self.act("POST", f"/admin/users/{user_id}/{action}")

    def delete(self, user_id: str) -> Any:
        self._guard(user_id, self.LAST_ADMIN_DELETE_MESSAGE)
        return self.act("DELETE", f"/admin/users/{user_id}")


class Debouncer:
    """Trailing-edge debounce: only the last call within `wait` seconds runs."""

    def __init__(self, func: Callable[..., Any], wait: float = 0.5):
        self.func = func
        self.wait = wait
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def __call__(self, *args, **kwargs) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.wait, self.func, args=args, kwargs=kwargs)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
