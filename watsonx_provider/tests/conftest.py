"""Shared fixtures for provider unit tests; no real network calls."""

from __future__ import annotations

import os
from typing import Callable

import httpx
import pytest

from watsonx_provider.watsonx import IBMWatsonxProvider

BASE_URL = "https://us-south.ml.cloud.ibm.com"
CHAT_PATH = "/ml/v1/text/chat"
SPECS_PATH = "/ml/v1/foundation_model_specs"
MODELS_PATH = "/ml/v1/models"

requires_watsonx = pytest.mark.skipif(
    not os.environ.get("IBM_WATSONX_API_KEY"),
    reason="watsonx not available (set IBM_WATSONX_API_KEY and IBM_WATSONX_PROJECT_ID)",
)

Handler = Callable[[httpx.Request], httpx.Response]


class FakeWatsonx:
    """Answers IAM and watsonx requests and records every one of them."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_payload: dict = {"access_token": "tok-1", "expires_in": 3600}
        self.routes: dict[str, Handler] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "iam.cloud.ibm.com":
            return httpx.Response(self.token_status, json=self.token_payload)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, json={"errors": [{"code": "not_found"}]})
        return handler(request)

    def route(self, path: str, status: int = 200, json: object = None) -> None:
        """Serve a fixed JSON response for ``path``."""
        self.routes[path] = lambda request: httpx.Response(status, json=json)

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @property
    def token_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == "iam.cloud.ibm.com"]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_watsonx() -> FakeWatsonx:
    return FakeWatsonx()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider(fake_watsonx, clock) -> IBMWatsonxProvider:
    """Provider isolated from os.environ, talking to FakeWatsonx."""
    return IBMWatsonxProvider(
        environ={},
        transport=httpx.MockTransport(fake_watsonx),
        clock=clock,
    )


@pytest.fixture
def server_env() -> dict[str, str]:
    return {
        "IBM_WATSONX_API_KEY": "test-key",
        "IBM_WATSONX_PROJECT_ID": "proj-1",
    }
