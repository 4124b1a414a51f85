"""
Test configuration and fixtures for the RunGhost backend tests.
"""

import asyncio
import json
import os
import threading
from typing import Dict, List, Optional
from urllib.parse import parse_qs, unquote, urlparse

import mongomock
import pytest

from models.identity import Identity
from repositories.cache import CacheStore
from services.audit_logger import AuditLogger
from services.npm_client import NpmRegistryClient

REGISTRY_URL = "https://registry.test"


class FakeClock:
    """Settable epoch clock for cache freshness tests."""

    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, status_code: int, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeRegistrySession:
    """
    Stand-in for requests.Session serving the search and packument endpoints
    from in-memory data. Outcomes queued with `script()` are returned first
    (an int is a bare status, an exception is raised).
    """

    def __init__(self):
        self.headers: Dict[str, str] = {}
        self.listings: Dict[str, List[str]] = {}
        self.packuments: Dict[str, dict] = {}
        self.scripted: Dict[str, list] = {}
        self.calls: List[str] = []
        self.on_get = None
        self._lock = threading.Lock()

    def publish(
        self,
        name: str,
        version: str = "1.0.0",
        dependencies: Optional[Dict[str, str]] = None,
        listed: bool = True,
        **fields,
    ) -> dict:
        packument = {
            "name": name,
            "description": fields.pop("description", f"{name} package"),
            "dist-tags": {"latest": version},
            "versions": {version: {"name": name, "version": version, "dependencies": dependencies or {}}},
            "time": {version: "2024-01-10T12:00:00.000Z"},
            "maintainers": [{"name": "acme-bot", "email": "bot@acme.test"}],
            **fields,
        }
        self.packuments[name] = packument
        if listed:
            self.list_only(name.split("/", 1)[0], name)
        return packument

    def list_only(self, scope: str, *names: str) -> None:
        self.listings.setdefault(scope, []).extend(names)

    def script(self, url: str, *outcomes) -> None:
        self.scripted.setdefault(url, []).extend(outcomes)

    def calls_to(self, fragment: str) -> int:
        return sum(1 for url in self.calls if fragment in url)

    def get(self, url: str, timeout=None) -> FakeResponse:
        with self._lock:
            self.calls.append(url)
            queued = self.scripted.get(url)
            outcome = queued.pop(0) if queued else None

        if self.on_get is not None:
            self.on_get(url)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            return FakeResponse(outcome, {"error": "scripted"})

        parsed = urlparse(url)
        if parsed.path == "/-/v1/search":
            params = parse_qs(parsed.query)
            scope = params["text"][0]
            size = int(params["size"][0])
            offset = int(params["from"][0])
            names = sorted(self.listings.get(scope, []))
            page = names[offset:offset + size]
            return FakeResponse(200, {
                "objects": [{"package": {"name": name, "scope": scope[1:]}} for name in page],
                "total": len(names),
            })

        name = unquote(parsed.path.lstrip("/"))
        if name in self.packuments:
            return FakeResponse(200, json.loads(json.dumps(self.packuments[name])))
        return FakeResponse(404, {"error": "Not found"})


class WorkspaceBuilder:
    """Writes package.json files under a temporary workspace root."""

    def __init__(self, root: str):
        self.root = root

    def add(self, relative_path: str, manifest=None, **fields) -> str:
        directory = os.path.join(self.root, relative_path)
        os.makedirs(directory, exist_ok=True)
        if manifest is None:
            manifest = fields
        text = manifest if isinstance(manifest, str) else json.dumps(manifest, indent=2)
        with open(os.path.join(directory, "package.json"), "w", encoding="utf-8") as f:
            f.write(text)
        return directory

    def path(self, relative_path: str) -> str:
        return os.path.join(self.root, relative_path)


@pytest.fixture
def database():
    """In-memory MongoDB database."""
    return mongomock.MongoClient()["runghost_test"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_store(database, clock):
    return CacheStore(database, clock=clock)


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return WorkspaceBuilder(str(root))


@pytest.fixture
def registry_session():
    return FakeRegistrySession()


@pytest.fixture
def sleeps():
    """Delays requested by the registry client's backoff."""
    return []


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def registry_client(registry_session, audit_logger, sleeps):
    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)
        await asyncio.sleep(0)

    return NpmRegistryClient(
        base_url=REGISTRY_URL,
        session=registry_session,
        audit_logger=audit_logger,
        sleep=record_sleep,
    )


@pytest.fixture
def acme():
    return Identity(id="acme", username="acme-corp", scopes=["@acme"])
