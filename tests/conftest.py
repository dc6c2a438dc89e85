# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Shared test fixtures for the nodeagent test suite.

Provides an in-process fake configuration service (an httpx transport
that routes requests to in-memory state), a service client bound to it,
a file secret store under ``tmp_path`` and a static fact source.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import httpx
import pytest

from nodeagent.client import LifecycleOrchestrator
from nodeagent.converge import LoggingExecutionEngine
from nodeagent.facts import StaticFactSource
from nodeagent.rest import ConfigServiceClient
from nodeagent.secret_store import FileSecretStore

BASE_URL = "http://config.test"

HOST_FACTS = {
    "fqdn": "web1.example.com",
    "hostname": "web1",
    "domain": "example.com",
    "os": "linux",
}


# =========================================================================
# Fake configuration service
# =========================================================================


class FakeConfigService(httpx.AsyncBaseTransport):
    """In-memory configuration service speaking the agent's HTTP API."""

    def __init__(self) -> None:
        self.nodes: dict[str, dict] = {}
        self.registrations: dict[str, str] = {}
        self.attribute_files: list[dict] = []
        self.resources: list[dict] = []
        self.requests: list[tuple[str, str, Any]] = []
        self.failures: dict[tuple[str, str], int] = {}
        self.session_token: Optional[str] = "session-token"
        self.action = "/openid/consumer/complete"
        self._claimed_id: Optional[str] = None

    # -- test helpers --

    def fail(self, method: str, path: str, status: int = 500) -> None:
        """Make every request to (method, path) return ``status``."""
        self.failures[(method, path)] = status

    def calls(self, method: str, path: Optional[str] = None) -> list[tuple[str, str, Any]]:
        return [
            r for r in self.requests
            if r[0] == method and (path is None or r[1] == path)
        ]

    # -- transport --

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        raw = await request.aread()
        body = json.loads(raw) if raw else None
        method = request.method
        path = request.url.path.lstrip("/")
        self.requests.append((method, path, body))

        if (method, path) in self.failures:
            return httpx.Response(self.failures[(method, path)], json={"detail": "injected failure"})

        parts = path.split("/")
        if parts[0] == "nodes" and len(parts) == 2:
            return self._node(method, parts[1], body)
        if parts[0] == "nodes" and len(parts) == 3 and parts[2] == "compile" and method == "GET":
            return self._compile(parts[1])
        if parts[0] == "registrations":
            return self._registration(method, parts, body)
        if path == "openid/consumer/start" and method == "POST":
            self._claimed_id = body["openid_identifier"].rsplit("/", 1)[-1]
            return httpx.Response(200, json={"action": self.action})
        if path == self.action.lstrip("/") and method == "POST":
            return self._complete(body)
        if path == "cookbooks/_attribute_files" and method == "GET":
            return httpx.Response(200, json=self.attribute_files)
        return httpx.Response(500, json={"detail": f"no route for {method} {path}"})

    def _node(self, method: str, safe_id: str, body: Any) -> httpx.Response:
        if method == "GET":
            if safe_id not in self.nodes:
                return httpx.Response(404, json={"detail": "Node not found"})
            return httpx.Response(200, json=self.nodes[safe_id])
        if method == "PUT":
            self.nodes[safe_id] = body
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(405)

    def _compile(self, safe_id: str) -> httpx.Response:
        if safe_id not in self.nodes:
            return httpx.Response(404, json={"detail": "Node not found"})
        return httpx.Response(
            200,
            json={"node": self.nodes[safe_id], "collection": {"resources": self.resources}},
        )

    def _registration(self, method: str, parts: list[str], body: Any) -> httpx.Response:
        if method == "GET" and len(parts) == 2:
            if parts[1] not in self.registrations:
                return httpx.Response(404, json={"detail": "Registration not found"})
            return httpx.Response(200, json={"id": parts[1]})
        if method == "POST" and len(parts) == 1:
            self.registrations[body["id"]] = body["password"]
            return httpx.Response(201, json={"id": body["id"]})
        return httpx.Response(405)

    def _complete(self, body: Any) -> httpx.Response:
        expected = self.registrations.get(self._claimed_id or "")
        if expected is None or body.get("password") != expected:
            return httpx.Response(401, json={"detail": "Authentication failed"})
        return httpx.Response(200, json={"token": self.session_token})


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture
def fake_service() -> FakeConfigService:
    return FakeConfigService()


@pytest.fixture
def service_client(fake_service: FakeConfigService) -> ConfigServiceClient:
    """Service client whose requests are answered by ``fake_service``."""
    return ConfigServiceClient(BASE_URL, transport=fake_service)


@pytest.fixture
def secret_store(tmp_path) -> FileSecretStore:
    return FileSecretStore(tmp_path / "secrets")


@pytest.fixture
def fact_source() -> StaticFactSource:
    return StaticFactSource(HOST_FACTS)


@pytest.fixture
def engine() -> LoggingExecutionEngine:
    return LoggingExecutionEngine()


@pytest.fixture
def make_orchestrator(
    service_client: ConfigServiceClient,
    fact_source: StaticFactSource,
    secret_store: FileSecretStore,
    engine: LoggingExecutionEngine,
) -> Callable[..., LifecycleOrchestrator]:
    """Factory fixture: a fresh orchestrator wired to the fake service."""

    def _make(**kwargs: Any) -> LifecycleOrchestrator:
        params: dict[str, Any] = {
            "service": service_client,
            "fact_source": fact_source,
            "secret_store": secret_store,
            "engine": engine,
            "openid_url": BASE_URL,
        }
        params.update(kwargs)
        return LifecycleOrchestrator(**params)

    return _make
