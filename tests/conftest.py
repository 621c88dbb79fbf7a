import os
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from graph.config import REG, load_settings
from graph.errors import ErrorCode, ProviderError
from graph.models import ProviderReply

# Fixed test API key for consistent auth testing
TEST_API_KEY = "test_secret_key_12345"

PROVIDER_ENV = (
    "OPENROUTER_API_KEY",
    "GROQ_API_KEY",
    "OPENROUTER_BASE_URL",
    "GROQ_BASE_URL",
    "CHAIN_WALK_RETRY",
    "AI_MAX_RETRIES",
    "AI_INITIAL_BACKOFF_MS",
)


@pytest.fixture(scope="session", autouse=True)
def setup_global_env():
    """
    Set baseline environment variables for the entire test session.
    Used to prevent accidental production connectivity.
    """
    os.environ["TUTOR_ROUTER_API_KEY"] = TEST_API_KEY


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """
    Ensure every test runs with a clean/known environment.
    Provider keys are fake; no test reaches a real endpoint.
    """
    for var in PROVIDER_ENV:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.setenv("TUTOR_ROUTER_API_KEY", TEST_API_KEY)
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-test-mock-key")
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test-mock-key")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    yield


class FakeClient:
    """
    Stand-in for ChatCompletionsClient.

    outcomes maps model key -> list of results consumed in order; each item
    is either reply text or an exception to raise. Every call is recorded.
    """

    def __init__(self, name: str, outcomes: Optional[Dict[str, List]] = None):
        self.name = name
        self.outcomes = {k: list(v) for k, v in (outcomes or {}).items()}
        self.calls: List[Dict] = []

    def _next(self, model):
        queue = self.outcomes.get(model.key)
        if not queue:
            raise ProviderError(f"{self.name} error: no scripted outcome", ErrorCode.UNKNOWN, 400, self.name)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return ProviderReply(text=item, provider=self.name, model_id=model.id)

    async def call(self, prompt, model, history=None):
        self.calls.append({"kind": "plain", "prompt": prompt, "model": model.key, "history": history})
        return self._next(model)

    async def call_enhanced(self, prompt, system_prompt, model):
        self.calls.append({"kind": "enhanced", "prompt": prompt, "system": system_prompt, "model": model.key})
        return self._next(model)


@pytest.fixture
def fake_client_factory():
    return FakeClient


@pytest.fixture
def settings():
    return load_settings()


@pytest.fixture
def registry():
    return REG


@pytest.fixture
def client():
    """
    Create a TestClient with the FastAPI app.
    Lazy import ensures app is initialized with test env vars.
    Uses context manager pattern so the lifespan (router, queue) runs.
    """
    from app.main import app
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Return headers with a valid API key."""
    return {"X-API-Key": TEST_API_KEY}


@pytest.fixture
def wrong_auth_headers():
    """Return headers with an invalid API key."""
    return {"X-API-Key": "invalid-key-attempt"}
