from __future__ import annotations

from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from bedrock_panel_gateway.app import create_app
from bedrock_panel_gateway.config import GatewayConfig
from bedrock_panel_gateway.panel_client import PanelClient

SERVER_UUID = "1a7ce997"
PANEL_URL = "https://panel.example.com/"
API_KEY = "ptlc_testkey"


class FakePanel:
    """In-memory stand-in for the Pterodactyl Client API of one server."""

    def __init__(self, server_uuid: str = SERVER_UUID) -> None:
        self.prefix = f"/api/client/servers/{server_uuid}"
        self.files: dict[str, str] = {}
        self.directories: dict[str, list[dict[str, Any]]] = {}
        self.routes: dict[tuple[str, str], Any] = {}
        # key -> (status, detail) or "timeout"
        self.failures: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []
        self.writes: list[tuple[str, str]] = []

    def add_directory(self, path: str, *names: str, files: tuple[str, ...] = ()) -> None:
        entries = [
            {"object": "file_object", "attributes": {"name": name, "is_file": False}}
            for name in names
        ]
        entries += [
            {"object": "file_object", "attributes": {"name": name, "is_file": True}}
            for name in files
        ]
        self.directories[path] = entries

    def fail(self, key: str, status: int = 500, detail: str = "Internal error") -> None:
        self.failures[key] = (status, detail)

    def _failure(self, key: str, request: httpx.Request) -> httpx.Response | None:
        failure = self.failures.get(key)
        if failure is None:
            return None
        if failure == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        status, detail = failure
        return httpx.Response(
            status,
            json={"errors": [{"code": "Error", "status": str(status), "detail": detail}]},
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if not path.startswith(self.prefix):
            return httpx.Response(404, json={"errors": [{"detail": "Server not found"}]})
        suffix = path[len(self.prefix):]

        if suffix == "/files/contents":
            file = request.url.params.get("file", "")
            failed = self._failure(file, request)
            if failed is not None:
                return failed
            if file not in self.files:
                return httpx.Response(404, json={"errors": [{"detail": "File not found"}]})
            return httpx.Response(200, text=self.files[file])

        if suffix == "/files/list":
            directory = request.url.params.get("directory", "")
            failed = self._failure(directory, request)
            if failed is not None:
                return failed
            if directory not in self.directories:
                return httpx.Response(404, json={"errors": [{"detail": "Directory not found"}]})
            return httpx.Response(200, json={"object": "list", "data": self.directories[directory]})

        if suffix == "/files/write":
            file = request.url.params.get("file", "")
            failed = self._failure(f"write:{file}", request)
            if failed is not None:
                return failed
            content = request.content.decode("utf-8")
            self.writes.append((file, content))
            self.files[file] = content
            return httpx.Response(204)

        failed = self._failure(suffix, request)
        if failed is not None:
            return failed
        if (request.method, suffix) in self.routes:
            payload = self.routes[(request.method, suffix)]
            if payload is None:
                return httpx.Response(204)
            return httpx.Response(200, json=payload)
        return httpx.Response(404, json={"errors": [{"detail": "Route not found"}]})

    def client_factory(self, config: GatewayConfig) -> PanelClient:
        return PanelClient(config, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def config() -> GatewayConfig:
    return GatewayConfig(panel_url=PANEL_URL, api_key=API_KEY, timeout=2.0)


@pytest.fixture
def panel() -> FakePanel:
    return FakePanel()


@pytest.fixture
def app(config: GatewayConfig, panel: FakePanel):
    return create_app(config=config, client_factory=panel.client_factory)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def call(client: TestClient):
    def _call(action: str | None, body: Any = None, params: dict[str, str] | None = None,
              server_uuid: str | None = SERVER_UUID) -> httpx.Response:
        query = dict(params or {})
        if action is not None:
            query["action"] = action
        headers = {"x-server-uuid": server_uuid} if server_uuid is not None else {}
        return client.post(
            "/api/pterodactyl-proxy",
            params=query,
            headers=headers,
            json=body if body is not None else None,
        )

    return _call
