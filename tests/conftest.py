import copy
import json
from collections import defaultdict
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import httpx
import pytest

from skillswap.client.api import ApiClient
from skillswap.client.feedback import Notifier
from skillswap.client.realtime import RealtimeManager
from skillswap.client.session import Session
from skillswap.core.security import create_access_token, get_password_hash
from skillswap.db.firebase_ops import generate_object_id

# Every module that resolves storage through get_firestore_ops_instance
FIRESTORE_USERS = [
    "skillswap.core.dependencies",
    "skillswap.routers.auth",
    "skillswap.routers.users",
    "skillswap.routers.projects",
    "skillswap.routers.bids",
    "skillswap.routers.messaging",
    "skillswap.routers.admin",
    "skillswap.routers.dashboard",
    "skillswap.routers.analytics",
    "skillswap.routers.notifications",
    "skillswap.realtime.hub",
]

TEST_PASSWORD = "password123"


def _matches(doc: Dict[str, Any], field: str, operator: str, value: Any) -> bool:
    current = doc.get(field)
    if operator == "==":
        return current == value
    if operator == "!=":
        return current != value
    if operator == "in":
        return current in value
    if operator == "array_contains":
        return isinstance(current, list) and value in current
    if current is None:
        return False
    if operator == ">=":
        return current >= value
    if operator == "<=":
        return current <= value
    if operator == ">":
        return current > value
    if operator == "<":
        return current < value
    raise ValueError(f"Unsupported operator {operator}")


class InMemoryFirestore:
    """Dict-backed stand-in for FirestoreBaseModel with the same method contracts."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)

    def _parse(self, doc_id, data, pydantic_model):
        record = {**copy.deepcopy(data), "id": doc_id}
        return pydantic_model(**record) if pydantic_model else record

    def save(self, collection_name, data_model, document_id=None):
        data = data_model.model_dump(exclude_unset=True) if hasattr(data_model, "model_dump") else dict(data_model)
        data.pop("id", None)
        now = datetime.utcnow()
        data["updated_at"] = now
        document_id = document_id or generate_object_id()
        existing = self.collections[collection_name].get(document_id, {})
        if not existing:
            data.setdefault("created_at", now)
        self.collections[collection_name][document_id] = {**existing, **copy.deepcopy(data)}
        return document_id

    def get(self, collection_name, document_id, pydantic_model=None):
        data = self.collections[collection_name].get(document_id)
        return self._parse(document_id, data, pydantic_model) if data is not None else None

    def get_all(self, collection_name, limit=None, pydantic_model=None):
        items = list(self.collections[collection_name].items())[:limit]
        return [self._parse(doc_id, data, pydantic_model) for doc_id, data in items]

    def query(self, collection_name, field, operator, value, pydantic_model=None):
        return self.query_many(collection_name, [(field, operator, value)], pydantic_model=pydantic_model)

    def query_many(self, collection_name, filters, pydantic_model=None):
        return [
            self._parse(doc_id, data, pydantic_model)
            for doc_id, data in self.collections[collection_name].items()
            if all(_matches(data, f, op, v) for f, op, v in filters)
        ]

    def update(self, collection_name, document_id, updates):
        document = self.collections[collection_name].get(document_id)
        if document is None:
            return False
        document.update(copy.deepcopy(updates))
        document["updated_at"] = datetime.utcnow()
        return True

    def update_if(self, collection_name, document_id, expected, updates):
        document = self.collections[collection_name].get(document_id)
        if document is None or any(document.get(k) != v for k, v in expected.items()):
            return False
        return self.update(collection_name, document_id, updates)

    def delete(self, collection_name, document_id):
        self.collections[collection_name].pop(document_id, None)
        return True

    # --- Test helpers ---

    def docs(self, collection_name) -> List[Dict[str, Any]]:
        return self.get_all(collection_name)

    def put(self, collection_name, data, document_id=None, age: Optional[timedelta] = None) -> str:
        document_id = self.save(collection_name, data, document_id)
        if age is not None:
            stamp = datetime.utcnow() - age
            self.collections[collection_name][document_id].update({"created_at": stamp, "updated_at": stamp})
        return document_id


@pytest.fixture
def store(monkeypatch):
    fake = InMemoryFirestore()
    for module in FIRESTORE_USERS:
        monkeypatch.setattr(f"{module}.get_firestore_ops_instance", lambda: fake)
    return fake


def auth_headers(user_id: str, role: str = "client") -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id, 'role': role})}"}


@pytest.fixture
def make_user(store):
    """Create a user (plus role profile) and return (user_id, auth headers)."""

    def _make_user(role: str = "client", name: Optional[str] = None, email: Optional[str] = None, profile: Optional[dict] = None, **fields):
        user_id = generate_object_id()
        record = {
            "name": name or f"{role.title()} {user_id[-4:]}",
            "email": email or f"{role}-{user_id[-6:]}@example.com",
            "role": role,
            "hashed_password": get_password_hash(TEST_PASSWORD),
            "is_verified": True,
            "account_status": "active",
            "is_active": True,
        }
        record.update(fields)
        store.put("users", record, user_id)
        if role == "client":
            store.put("client_profiles", {"user_id": user_id, **(profile or {})}, user_id)
        elif role == "freelancer":
            store.put("freelancer_profiles", {"user_id": user_id, "verification_status": "approved", **(profile or {})}, user_id)
        return user_id, auth_headers(user_id, role)

    return _make_user


@pytest.fixture
def make_project(store):
    def _make_project(client_id: str, status: str = "open", **fields):
        record = {
            "title": "Build a landing page",
            "description": "Single page marketing site",
            "category": "web",
            "skills": ["html", "css"],
            "budget": 500.0,
            "client_id": client_id,
            "assigned_freelancer_id": None,
            "status": status,
            "bid_ids": [],
            "progress": 0,
        }
        record.update(fields)
        return store.put("projects", record)

    return _make_project


@pytest.fixture
def make_bid(store):
    def _make_bid(project_id: str, freelancer_id: str, amount: float = 400.0, status: str = "pending", **fields):
        record = {
            "project_id": project_id,
            "freelancer_id": freelancer_id,
            "amount": amount,
            "delivery_time": 7,
            "proposal": "I can do this",
            "status": status,
            "counter_offer": {"status": "none"},
        }
        record.update(fields)
        bid_id = store.put("bids", record)
        project = store.collections["projects"][project_id]
        project["bid_ids"] = project.get("bid_ids", []) + [bid_id]
        return bid_id

    return _make_bid


# --- Client layer ---

class FakeBackend:
    """Scripted REST responses for the client layer; records every request it sees."""

    def __init__(self):
        self.routes: Dict[tuple, tuple] = {}
        self.requests: List[httpx.Request] = []

    def on(self, method: str, path: str, body: Any = None, status_code: int = 200) -> None:
        self.routes[(method, path)] = (status_code, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        status_code, body = route
        if callable(body):
            body = body(request)
        return httpx.Response(status_code, json=body)

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method) and (path is None or r.url.path == path)
        ]


class RecordingTransport:
    """In-memory stand-in for a websocket connection."""

    def __init__(self, url: str):
        self.url = url
        self.sent: List[Dict[str, Any]] = []
        self.incoming: List[str] = []
        self.closed = False

    def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    def recv(self, timeout: Optional[float] = None) -> str:
        if self.incoming:
            return self.incoming.pop(0)
        raise TimeoutError()

    def close(self) -> None:
        self.closed = True

    def events(self) -> List[str]:
        return [frame["event"] for frame in self.sent]


@pytest.fixture
def client_env():
    """Session, API client, notifier and realtime manager wired to fakes for one signed-in user."""
    environments = []

    def _client_env(role: str = "client", user_id: Optional[str] = None):
        user_id = user_id or generate_object_id()
        backend = FakeBackend()
        transports: List[RecordingTransport] = []

        def _transport_factory(url: str) -> RecordingTransport:
            transport = RecordingTransport(url)
            transports.append(transport)
            return transport

        session = Session(user={"id": user_id, "role": role, "name": f"{role.title()} User"}, token="token-123")
        api = ApiClient(session, base_url="http://testserver", transport=httpx.MockTransport(backend.handler))
        env = SimpleNamespace(
            user_id=user_id,
            session=session,
            backend=backend,
            api=api,
            notifier=Notifier(),
            realtime=RealtimeManager(session, url="ws://testserver/ws", transport_factory=_transport_factory),
            transports=transports,
        )
        env.collaborators = (env.session, env.api, env.notifier, env.realtime)
        environments.append(env)
        return env

    yield _client_env
    for env in environments:
        env.api.close()
