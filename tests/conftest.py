"""Shared pytest fixtures for relay tests."""

from __future__ import annotations

from typing import Any, Generator, List

import httpx
import pytest
from fastapi.testclient import TestClient

from backend.app import app, get_http_client, get_poller, get_settings
from backend.generator import make_poller
from config.settings import Settings

BFL_BASE = "https://bfl.test/v1"


class VirtualClock:
    """Virtual time advanced only by VirtualClock.sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedUpstream:
    """Fake BFL API served through ``httpx.MockTransport``.

    ``create_response`` answers every POST. Each GET pops the next item of
    ``polls``: a dict is returned as a 200 JSON body, an ``httpx.Response``
    is returned as-is and an exception instance is raised. Once the script
    runs out the last item is repeated.
    """

    def __init__(self) -> None:
        self.create_response: Any = {
            "id": "abc",
            "polling_url": "https://bfl.test/v1/get_result?id=abc",
        }
        self.polls: List[Any] = [{"status": "Ready", "result": {"sample": "https://img/abc.jpg"}}]
        self.requests: List[httpx.Request] = []
        self.poll_count = 0

    @property
    def created(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.method == "POST":
            return self._respond(self.create_response)

        self.poll_count += 1
        index = min(self.poll_count - 1, len(self.polls) - 1)
        item = self.polls[index]
        if isinstance(item, Exception):
            raise item
        return self._respond(item)

    @staticmethod
    def _respond(item: Any) -> httpx.Response:
        if isinstance(item, httpx.Response):
            # fresh copy, scripted items may be served more than once
            return httpx.Response(item.status_code, headers=item.headers, content=item.content)
        return httpx.Response(200, json=item)


@pytest.fixture
def upstream() -> ScriptedUpstream:
    """Scripted generation API."""
    return ScriptedUpstream()


@pytest.fixture
def mock_client(upstream: ScriptedUpstream) -> httpx.AsyncClient:
    """httpx client whose transport is the scripted upstream."""
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))


@pytest.fixture
def clock() -> VirtualClock:
    """Virtual clock for the poll loop; no real time passes."""
    return VirtualClock()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with test credentials and a short poll budget.

    Returns:
        Settings instance isolated from the process environment
    """
    cfg = Settings()
    cfg.BFL_API_KEY = "test-key"
    cfg.BFL_API_BASE = BFL_BASE
    cfg.BFL_MODEL = "flux-pro-1.1"
    cfg.BFL_EDIT_MODEL = "flux-kontext-pro"
    cfg.POLL_INTERVAL = 0.5
    cfg.POLL_MAX_ATTEMPTS = 5
    cfg.IMAGE_URL_TTL = 600
    cfg.OLLAMA_API_KEY = "ollama-key"
    cfg.OLLAMA_HOST = "https://llm.test"
    cfg.ENHANCE_MODELS = ["model-a", "model-b"]
    return cfg


@pytest.fixture
def test_client(
    test_settings: Settings, mock_client: httpx.AsyncClient, clock: VirtualClock
) -> Generator[TestClient, None, None]:
    """TestClient wired to the scripted upstream and the virtual clock.

    Yields:
        TestClient for the FastAPI app

    Cleanup:
        Dependency overrides are removed after the test
    """
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_http_client] = lambda: mock_client
    app.dependency_overrides[get_poller] = lambda: make_poller(
        mock_client, test_settings, sleep=clock.sleep, clock=clock
    )
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def anyio_backend() -> str:
    """Run coroutine tests on asyncio only (aiohttp needs it)."""
    return "asyncio"
