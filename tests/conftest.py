"""Pytest configuration helpers.

This conftest ensures the ``backend`` directory is on ``sys.path`` so tests
can import the ``videoproxy`` package regardless of how pytest is invoked,
and provides isolated settings plus a programmable fake provider transport.
"""
import io
import os
import sys

import httpx
import pytest
from PIL import Image


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

from videoproxy.config import Settings  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    return Settings(
        VIDEOS_DIR=str(tmp_path / "videos"),
        UPLOADS_DIR=str(tmp_path / "uploads"),
        REFERENCES_DIR=str(tmp_path / "references"),
        VIDEO_HISTORY_LIMIT=20,
        OPENAI_API_KEY="",
        OPENAI_BASE_URL="https://openai.test/v1",
        OPENAI_POLL_INTERVAL_MS=0,
        OPENAI_POLL_TIMEOUT_MS=2000,
        GEMINI_API_KEY="",
        GEMINI_BASE_URL="https://gemini.test/v1beta",
        GEMINI_POLL_INTERVAL_MS=0,
        GEMINI_POLL_TIMEOUT_MS=2000,
        SSL_CERT_PATH="",
        SSL_KEY_PATH="",
        _env_file=None,
    )


class FakeProvider:
    """Routes requests to handlers keyed by (method, path) and records them."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, *responses):
        """Register responses for a route; the last one repeats forever."""
        self.routes[(method, path)] = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"error": {"message": f"no route {key}"}})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response):
            return response(request)
        # fresh copy: a Response instance can only be consumed once
        return httpx.Response(
            response.status_code, headers=response.headers, content=response.content
        )

    def sent(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def fake():
    return FakeProvider()


@pytest.fixture
def http_client(fake):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake))


def make_image(width=640, height=480, fmt="PNG", color=(200, 40, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buf, format=fmt)
    return buf.getvalue()


def multipart_parts(request: httpx.Request) -> dict:
    """Split a multipart request body into {field name: bytes}."""
    content_type = request.headers["content-type"]
    boundary = content_type.split("boundary=", 1)[1].strip('"').encode()
    parts = {}
    for chunk in request.content.split(b"--" + boundary):
        if b"\r\n\r\n" not in chunk:
            continue
        head, body = chunk.split(b"\r\n\r\n", 1)
        if body.endswith(b"\r\n"):
            body = body[:-2]
        marker = b'name="'
        start = head.find(marker)
        if start < 0:
            continue
        start += len(marker)
        name = head[start:head.index(b'"', start)].decode()
        parts[name] = body
    return parts
