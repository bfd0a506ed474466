"""Pytest configuration for tests.

MongoDB is replaced by an in-memory stand-in that implements the subset of
the Motor API the services use. Data lives on ``FakeMongoServer`` so it
survives reconnects, like a real server would.
"""

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import httpx
import pytest
from bson import ObjectId
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from core.app import create_app
from core.config import CONNECTION_STRING_ENV_VARS, Settings
from core.database import ConnectionManager
from services.marketplace_service import ServerMarketplaceService
from services.review_service import ReviewService

TEST_URI = "mongodb://localhost:27017/marketplace_test"


def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, expected in query.items():
        actual = doc.get(key)
        if isinstance(expected, dict) and "$ne" in expected:
            if actual == expected["$ne"]:
                return False
        elif actual != expected:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    def sort(self, key: str, direction: int = 1) -> "FakeCursor":
        self._docs = sorted(
            self._docs,
            key=lambda doc: doc.get(key) or "",
            reverse=direction == DESCENDING,
        )
        return self

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        docs = [copy.deepcopy(doc) for doc in self._docs]
        return docs if length is None else docs[:length]


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.indexes: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None
        self.index_error: Optional[Exception] = None

    async def _enter(self) -> None:
        # Yield so concurrent callers interleave between operations
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with

    async def create_index(self, keys, unique: bool = False, **kwargs) -> str:
        if self.index_error is not None:
            raise self.index_error
        self.indexes.append({"keys": list(keys), "unique": unique})
        return "_".join(f"{field}_{direction}" for field, direction in keys)

    def _unique_violation(self, doc: Dict[str, Any]) -> bool:
        for index in self.indexes:
            if not index["unique"]:
                continue
            fields = [field for field, _ in index["keys"]]
            key = tuple(doc.get(field) for field in fields)
            if any(tuple(other.get(field) for field in fields) == key for other in self.docs):
                return True
        return False

    def find(self, query: Optional[Dict[str, Any]] = None) -> FakeCursor:
        if self.fail_with is not None:
            raise self.fail_with
        return FakeCursor([doc for doc in self.docs if _matches(doc, query or {})])

    async def find_one(self, query: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        await self._enter()
        for doc in self.docs:
            if _matches(doc, query or {}):
                return copy.deepcopy(doc)
        return None

    async def insert_one(self, doc: Dict[str, Any]):
        await self._enter()
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", ObjectId())
        if self._unique_violation(stored):
            raise DuplicateKeyError("E11000 duplicate key error")
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any]):
        await self._enter()
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                for key, delta in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + delta
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def delete_one(self, query: Dict[str, Any]):
        await self._enter()
        for index, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[index]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def count_documents(self, query: Dict[str, Any]) -> int:
        await self._enter()
        return sum(1 for doc in self.docs if _matches(doc, query))

    async def distinct(self, key: str) -> List[Any]:
        await self._enter()
        values: List[Any] = []
        for doc in self.docs:
            value = doc.get(key)
            if value is not None and value not in values:
                values.append(value)
        return values


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


class FakeAdmin:
    def __init__(self, server: "FakeMongoServer"):
        self._server = server

    async def command(self, name: str) -> Dict[str, Any]:
        await asyncio.sleep(0)
        if self._server.ping_error is not None:
            raise self._server.ping_error
        return {"ok": 1.0}


class FakeMotorClient:
    def __init__(self, server: "FakeMongoServer", uri: str, **kwargs):
        self._server = server
        self.uri = uri
        self.options = kwargs
        self.closed = False
        self.admin = FakeAdmin(server)

    def __getitem__(self, name: str) -> FakeDatabase:
        return self._server.database(name)

    def get_default_database(self, default: Optional[str] = None) -> FakeDatabase:
        path = self.uri.split("://", 1)[-1].partition("/")[2].split("?", 1)[0]
        return self._server.database(path or default)

    def close(self) -> None:
        self.closed = True


class FakeMongoServer:
    """Shared state behind every ``FakeMotorClient`` created in a test."""

    def __init__(self):
        self.databases: Dict[str, FakeDatabase] = {}
        self.clients: List[FakeMotorClient] = []
        self.ping_error: Optional[Exception] = None

    def database(self, name: str) -> FakeDatabase:
        if name not in self.databases:
            self.databases[name] = FakeDatabase(name)
        return self.databases[name]

    def client_factory(self, uri: str, **kwargs) -> FakeMotorClient:
        client = FakeMotorClient(self, uri, **kwargs)
        self.clients.append(client)
        return client


class StepClock:
    """Clock that advances one second per reading."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def make_settings(monkeypatch):
    """Build settings isolated from the developer's environment and .env file."""
    for name in CONNECTION_STRING_ENV_VARS + ("MARKETPLACE_DB", "MARKETPLACE_PUBLIC_FALLBACK", "PUBLIC_LISTING_FALLBACK"):
        monkeypatch.delenv(name, raising=False)

    def _make(**overrides) -> Settings:
        values = {"MONGODB_URI": TEST_URI}
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def mongo() -> FakeMongoServer:
    return FakeMongoServer()


@pytest.fixture
def connection(settings, mongo) -> ConnectionManager:
    return ConnectionManager(settings, client_factory=mongo.client_factory)


@pytest.fixture
def servers_collection(mongo, settings) -> FakeCollection:
    return mongo.database("marketplace_test")[settings.SERVERS_COLLECTION]


@pytest.fixture
def marketplace_service(connection) -> ServerMarketplaceService:
    return ServerMarketplaceService(connection, clock=StepClock())


@pytest.fixture
def review_service(connection) -> ReviewService:
    return ReviewService(connection, clock=StepClock())


@pytest.fixture
async def api_client(settings, connection):
    """HTTP client bound to the application through ASGI."""
    app = create_app(settings, connection)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await connection.disconnect()


def owner_headers(user_id: str, email: Optional[str] = None, name: Optional[str] = None) -> Dict[str, str]:
    headers = {"X-User-Id": user_id}
    if email:
        headers["X-User-Email"] = email
    if name:
        headers["X-User-Name"] = name
    return headers
