"""Shared fixtures for all tests."""

import hashlib
import re
import threading
import time
import uuid
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote, urlsplit

import httpx
import pytest

from swiftbox.storage import Credentials, RetryBudget, RetryPolicy

ENDPOINTS = (
    "https://swift-a.example.com/v1/AUTH_test",
    "https://swift-b.example.com/v1/AUTH_test",
    "https://swift-c.example.com/v1/AUTH_test",
)


@pytest.fixture
def mock_env_clear(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Clear all Swift-related environment variables for testing.

    This ensures tests don't accidentally use real credentials from the environment.
    """
    env_vars_to_clear = [
        "SWIFT_USERNAME",
        "SWIFT_PASSWORD",
        "SWIFT_ENDPOINTS",
        "SWIFT_RETRIES",
        "SWIFT_ENDPOINT_RETRIES",
        "SWIFT_TIMEOUT",
        "SWIFT_SEGMENT_SIZE",
        "SWIFT_PREFETCH_SIZE",
        "SWIFT_RETRY_STATUSES",
        "DEBUG",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def endpoints() -> tuple[str, ...]:
    return ENDPOINTS


@pytest.fixture
def credentials() -> Credentials:
    """Mock credentials spanning three endpoints."""
    return Credentials(username="test:tester", password="testing", endpoints=ENDPOINTS)


@pytest.fixture
def single_endpoint_credentials() -> Credentials:
    return Credentials(username="test:tester", password="testing", endpoints=ENDPOINTS[:1])


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy without backoff so tests never sleep."""
    return RetryPolicy(
        budget=RetryBudget(total_attempts=6, per_endpoint_attempts=2),
        backoff_base=0.0,
    )


@pytest.fixture
def unique_test_name() -> str:
    """Generate a unique object name with timestamp."""
    timestamp = int(time.time())
    unique_id = uuid.uuid4().hex[:8]
    return f"swiftbox-test-{timestamp}-{unique_id}"


# =============================================================================
# In-memory Swift cluster
# =============================================================================


@dataclass
class StoredObject:
    data: bytes
    content_type: str = "application/octet-stream"
    metadata: dict[str, str] = field(default_factory=dict)
    manifest: str | None = None


class FakeSwift:
    """Minimal Swift proxy: v1 auth, containers, objects, DLO manifests, ranges, bulk delete.

    ``fail`` may return a status code to answer a request with instead of
    handling it, e.g. to make one segment upload fail.
    """

    ACCOUNT_PREFIX = "/v1/AUTH_test"
    TOKEN = "AUTH_tk_fake"

    def __init__(self) -> None:
        self.containers: dict[str, dict[str, StoredObject]] = {}
        self.log: list[tuple[str, str]] = []
        self.fail: Callable[[str, str], int | None] | None = None
        self._lock = threading.Lock()

    # -- adapters ----------------------------------------------------------

    def respond(self, request: Any) -> httpx.Response:
        """Answer a request recorded by a fake transport (method/url/headers/params/body)."""
        return self.handle(
            request.method,
            request.url,
            {k.lower(): v.decode("utf-8") if isinstance(v, bytes) else v for k, v in request.headers.items()},
            dict(request.params or {}),
            request.body or b"",
        )

    def httpx_handler(self, request: httpx.Request) -> httpx.Response:
        """``side_effect`` for respx routes."""
        return self.handle(
            request.method,
            str(request.url),
            {k.lower(): v for k, v in request.headers.items()},
            dict(request.url.params),
            request.content,
        )

    # -- helpers -----------------------------------------------------------

    def put(self, container: str, name: str, data: bytes, **kwargs: Any) -> None:
        self.containers.setdefault(container, {})[name] = StoredObject(data=data, **kwargs)

    def object_names(self, container: str) -> list[str]:
        return sorted(self.containers.get(container, {}))

    def resolve(self, obj: StoredObject) -> bytes:
        if obj.manifest is None:
            return obj.data
        seg_container, _, prefix = obj.manifest.partition("/")
        segments = self.containers.get(unquote(seg_container), {})
        prefix = unquote(prefix)
        return b"".join(segments[n].data for n in sorted(segments) if n.startswith(prefix))

    # -- request handling ----------------------------------------------------

    def handle(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        params: dict[str, str],
        body: bytes,
    ) -> httpx.Response:
        path = unquote(urlsplit(url).path)
        with self._lock:
            self.log.append((method, path))
            if path == "/auth/v1.0":
                return httpx.Response(
                    200,
                    headers={"x-auth-token": self.TOKEN, "x-auth-token-expires": "3600"},
                )
            if headers.get("x-auth-token") != self.TOKEN:
                return httpx.Response(401)
            if not path.startswith(self.ACCOUNT_PREFIX):
                return httpx.Response(404)
            rest = path[len(self.ACCOUNT_PREFIX) :].lstrip("/")
            container, _, name = rest.partition("/")
            if self.fail is not None:
                status = self.fail(method, rest)
                if status is not None:
                    return httpx.Response(status)
            if not container:
                return self._account(method, params, body)
            if not name:
                return self._container(method, container, params)
            return self._object(method, container, name, headers, body)

    def _account(self, method: str, params: dict[str, str], body: bytes) -> httpx.Response:
        if method != "POST" or "bulk-delete" not in params:
            return httpx.Response(405)
        deleted = not_found = 0
        for line in body.decode().splitlines():
            container, _, name = unquote(line.strip()).lstrip("/").partition("/")
            if self.containers.get(container, {}).pop(name, None) is None:
                not_found += 1
            else:
                deleted += 1
        return httpx.Response(
            200,
            json={
                "Number Deleted": deleted,
                "Number Not Found": not_found,
                "Errors": [],
                "Response Status": "200 OK",
            },
        )

    def _container(self, method: str, container: str, params: dict[str, str]) -> httpx.Response:
        if method == "PUT":
            created = container not in self.containers
            self.containers.setdefault(container, {})
            return httpx.Response(201 if created else 202)
        if container not in self.containers:
            return httpx.Response(404)
        if method == "GET":
            prefix = params.get("prefix", "")
            marker = params.get("marker", "")
            limit = int(params.get("limit", 10000))
            names = [n for n in self.object_names(container) if n.startswith(prefix) and n > marker][:limit]
            objects = self.containers[container]
            listing = [
                {
                    "name": n,
                    "bytes": len(self.resolve(objects[n])),
                    "hash": hashlib.md5(objects[n].data).hexdigest(),
                    "content_type": objects[n].content_type,
                    "last_modified": "2024-01-15T10:30:00.000000",
                }
                for n in names
            ]
            return httpx.Response(200, json=listing)
        return httpx.Response(405)

    def _object(
        self, method: str, container: str, name: str, headers: dict[str, str], body: bytes
    ) -> httpx.Response:
        if container not in self.containers:
            return httpx.Response(404)
        objects = self.containers[container]
        if method == "PUT":
            metadata = {k[len("x-object-meta-") :]: v for k, v in headers.items() if k.startswith("x-object-meta-")}
            content_type = headers.get("content-type", "application/octet-stream")
            if "x-copy-from" in headers:
                src_container, _, src_name = unquote(headers["x-copy-from"]).lstrip("/").partition("/")
                source = self.containers.get(src_container, {}).get(src_name)
                if source is None:
                    return httpx.Response(404)
                data = self.resolve(source)
                objects[name] = StoredObject(data=data, content_type=content_type, metadata=metadata)
            else:
                objects[name] = StoredObject(
                    data=body,
                    content_type=content_type,
                    metadata=metadata,
                    manifest=headers.get("x-object-manifest"),
                )
                data = body
            return httpx.Response(201, headers={"etag": hashlib.md5(data).hexdigest()})

        obj = objects.get(name)
        if obj is None:
            return httpx.Response(404)
        if method == "DELETE":
            del objects[name]
            return httpx.Response(204)

        data = self.resolve(obj)
        response_headers = {
            "content-type": obj.content_type,
            "etag": hashlib.md5(data).hexdigest(),
            "last-modified": "Mon, 15 Jan 2024 10:30:00 GMT",
            **{f"x-object-meta-{k}": v.encode("utf-8") for k, v in obj.metadata.items()},
        }
        if obj.manifest is not None:
            response_headers["x-object-manifest"] = obj.manifest
        if method == "HEAD":
            response_headers["content-length"] = str(len(data))
            return httpx.Response(200, headers=response_headers)
        if method != "GET":
            return httpx.Response(405)

        match = re.match(r"bytes=(\d+)-(\d*)$", headers.get("range", ""))
        if match is None:
            return httpx.Response(200, headers=response_headers, content=data)
        start = int(match.group(1))
        last = int(match.group(2)) if match.group(2) else len(data) - 1
        if start >= len(data):
            return httpx.Response(416, headers={"content-range": f"bytes */{len(data)}"})
        last = min(last, len(data) - 1)
        response_headers["content-range"] = f"bytes {start}-{last}/{len(data)}"
        return httpx.Response(206, headers=response_headers, content=data[start : last + 1])


@pytest.fixture
def fake_swift() -> FakeSwift:
    return FakeSwift()
