"""Shared fixtures for the image compressor test suite."""

import base64
import json
from collections import defaultdict
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest

from image_compressor.config import Settings
from image_compressor.events import EventEmitter
from image_compressor.pipeline import PipelineOrchestrator
from image_compressor.pool import CredentialPool
from image_compressor.transport import TransportClient

API_BASE = "https://api.tinify.com"
SECRETS = ["key-a", "key-b", "key-c"]


def secret_of(request: httpx.Request) -> str:
    """API key carried in a request's Basic auth header."""
    encoded = request.headers["authorization"].split(" ", 1)[1]
    return base64.b64decode(encoded).decode().split(":", 1)[1]


class FakeCompressionApi:
    """Scripted stand-in for the remote compression API.

    Serves /shrink, POST transforms and GET downloads on result handles, and
    reports a per-key usage counter in the Compression-Count header. Entries
    queued in ``failures`` are served (or raised) before normal handling.
    """

    def __init__(
        self,
        compressed: bytes = b"c" * 600,
        transformed: bytes = b"t" * 300,
        usage_start: Optional[Dict[str, int]] = None,
        remote_size: int = 4096,
    ):
        self.compressed = compressed
        self.transformed = transformed
        self.remote_size = remote_size
        self.usage: Dict[str, int] = defaultdict(int, usage_start or {})
        self.failures: List[Any] = []
        self.requests: List[httpx.Request] = []
        self.send_usage = True
        self.report_input = True
        self._handles = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def fail_with(self, status: int, error: str = "Error", message: str = "Failure") -> None:
        self.failures.append((status, {"error": error, "message": message}))

    def raise_error(self, exc: Exception) -> None:
        self.failures.append(exc)

    def _headers(self, secret: str, **extra: str) -> Dict[str, str]:
        headers = dict(extra)
        if self.send_usage:
            headers["Compression-Count"] = str(self.usage[secret])
        return headers

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        secret = secret_of(request)

        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, Exception):
                raise failure
            status, body = failure
            return httpx.Response(status, json=body)

        if request.url.path == "/shrink":
            self.usage[secret] += 1
            self._handles += 1
            location = f"{API_BASE}/output/handle{self._handles}"
            if request.headers.get("content-type") == "application/json":
                input_size = self.remote_size
            else:
                input_size = len(request.content)
            body = {"output": {"size": len(self.compressed), "type": "image/png", "url": location}}
            if self.report_input:
                body["input"] = {"size": input_size, "type": "image/png"}
            return httpx.Response(
                201,
                json=body,
                headers=self._headers(secret, Location=location),
            )

        if request.url.path.startswith("/output/"):
            if request.method == "GET":
                return httpx.Response(
                    200,
                    content=self.compressed,
                    headers=self._headers(secret, **{"Content-Type": "image/png"}),
                )
            self.usage[secret] += 1
            return httpx.Response(
                200,
                content=self.transformed,
                headers=self._headers(secret, **{"Content-Type": "image/webp"}),
            )

        return httpx.Response(404, json={"error": "NotFound", "message": "Unknown path"})

    def bodies(self) -> List[Dict[str, Any]]:
        """JSON bodies of every POST to a result handle, in order."""
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == "POST" and r.url.path.startswith("/output/")
        ]

    def secrets_used(self) -> List[str]:
        return [secret_of(r) for r in self.requests]


@pytest.fixture
def api():
    """Fake compression API."""
    return FakeCompressionApi()


@pytest.fixture
def settings():
    """Settings independent of the environment."""
    return Settings(api_keys=SECRETS[:2], retry_base_delay=1.0, chunk_size=1024)


@pytest.fixture
def events():
    return EventEmitter()


@pytest.fixture
def recorded(events):
    """Every emitted event as (name, payload), in order."""
    log = []
    for name in (
        "init", "start", "selecting", "progress", "quota_update",
        "key_error", "success", "error", "reset",
    ):
        events.on(name, lambda payload, name=name: log.append((name, payload)))
    return log


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def make_orchestrator(api, events, sleep):
    """Build an orchestrator over the fake API with a fresh pool."""

    def build(secrets=("key-a", "key-b"), monthly_limit=500):
        pool = CredentialPool(list(secrets), monthly_limit=monthly_limit)
        transport = TransportClient(base_url=API_BASE, chunk_size=1024, transport=api.transport)
        return PipelineOrchestrator(pool, transport, events, retry_base_delay=1.0, sleep=sleep)

    return build
