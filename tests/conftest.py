"""Pytest fixtures for nim-proxy tests."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from nim_proxy.config import Settings
from nim_proxy.main import create_app

NIM_BASE = "http://nim.test/v1"


class RecordingStream(httpx.AsyncByteStream):
    """Upstream body that yields fixed chunks and records whether it was closed."""

    def __init__(self, chunks, error: Exception | None = None):
        self.chunks = [c.encode() if isinstance(c, str) else c for c in chunks]
        self.error = error
        self.closed = False
        self.sent = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            self.sent += 1
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self):
        self.closed = True


class FakeNIM:
    """Records upstream requests and replies with a canned response."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.json_body = None
        self.text_body = None
        self.stream = None

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.stream is not None:
            return httpx.Response(
                self.status_code,
                headers={"content-type": "text/event-stream"},
                stream=self.stream,
            )
        if self.text_body is not None:
            return httpx.Response(self.status_code, text=self.text_body)
        return httpx.Response(self.status_code, json=self.json_body or {})

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def make_settings(**overrides) -> Settings:
    values = {"nim_api_base": NIM_BASE, "nim_api_key": "nvapi-test"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def sse(*payloads) -> str:
    """Build an upstream SSE body from dicts and raw strings."""
    parts = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        parts.append(f"data: {data}\n\n")
    return "".join(parts)


def delta_chunk(content=None, reasoning=None, finish_reason=None) -> dict:
    delta = {}
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    return {
        "id": "chunk-1",
        "object": "chat.completion.chunk",
        "model": "deepseek-ai/deepseek-r1",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def parse_sse(text: str) -> list:
    """Decode an outgoing SSE body into payloads; [DONE] stays a string."""
    events = []
    for block in text.split("\n\n"):
        if not block.startswith("data: "):
            continue
        data = block[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_nim() -> FakeNIM:
    return FakeNIM()


@pytest.fixture
def client(settings, fake_nim):
    app = create_app(settings, http_client=fake_nim.http_client())
    return TestClient(app)
