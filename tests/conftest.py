"""
Shared fixtures. The upstream API is simulated with httpx.MockTransport;
no test touches the network.
"""
from __future__ import annotations

import json
from typing import Iterable, List, Optional

import httpx
import pytest

from config.settings import Settings


def data_line(content: str) -> str:
    """One upstream event carrying a text delta, newline-terminated."""
    payload = {"choices": [{"index": 0, "delta": {"content": content}}]}
    return f"data: {json.dumps(payload)}\n"


DONE_LINE = "data: [DONE]\n"


class FakeUpstream:
    """Stand-in for the completions endpoint.

    Streams ``chunks`` as the response body, then raises ``error`` if set.
    Every request received is kept in ``calls``.
    """

    def __init__(self) -> None:
        self.calls: List[httpx.Request] = []
        self.status_code = 200
        self.chunks: List[bytes] = []
        self.error: Optional[Exception] = None
        self.connect_error: Optional[Exception] = None

    def respond_with(self, chunks: Iterable[str | bytes], error: Optional[Exception] = None) -> None:
        self.chunks = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
        self.error = error

    def request_json(self, index: int = -1) -> dict:
        return json.loads(self.calls[index].content)

    async def _body(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.connect_error is not None:
            raise self.connect_error
        if self.status_code != 200:
            return httpx.Response(
                self.status_code,
                json={"error": {"message": "Incorrect API key provided"}},
            )
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=self._body(),
        )

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        app_env="test",
        openai_api_key="sk-test",
        openai_model="gpt-test",
        openai_api_url="https://upstream.test/v1/chat/completions",
        system_prompt="Answer briefly.",
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_api_client(upstream: FakeUpstream):
    """Build a TestClient wired to ``upstream`` with the given settings."""
    from fastapi.testclient import TestClient

    from app.main import app, get_openai_client
    from config.settings import get_settings
    from relay.upstream import OpenAIChatClient

    clients = []

    def _make(settings: Settings) -> TestClient:
        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_openai_client] = lambda: OpenAIChatClient(
            settings, upstream.http_client()
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
    app.dependency_overrides.clear()


@pytest.fixture
def api_client(make_api_client, test_settings):
    return make_api_client(test_settings)


@pytest.fixture
def relay_app(test_settings, upstream: FakeUpstream):
    """The FastAPI app with settings and upstream overridden, for raw ASGI calls."""
    from app.main import app, get_openai_client
    from config.settings import get_settings
    from relay.upstream import OpenAIChatClient

    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_openai_client] = lambda: OpenAIChatClient(
        test_settings, upstream.http_client()
    )
    yield app
    app.dependency_overrides.clear()
