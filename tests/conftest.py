"""Pytest configuration and fixtures for Tollgate tests."""

from datetime import UTC, datetime, timedelta

import pytest

from tollgate.approval import ApprovalGate, Classification, RiskLevel
from tollgate.config import Settings
from tollgate.llm import ChatMessage, ChatResponse


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class StubOllamaClient:
    """Stands in for OllamaClient; always answers with an L1 verdict."""

    def __init__(self, settings: Settings | None = None):
        self.calls = 0
        self.closed = False

    async def chat(self, messages, **kwargs) -> ChatResponse:
        self.calls += 1
        content = '{"level": "L1", "reason": "small edit"}'
        return ChatResponse(model="test-model", message=ChatMessage(role="assistant", content=content))

    async def close(self) -> None:
        self.closed = True


def make_classification(level: RiskLevel, deterministic: bool = True) -> Classification:
    return Classification(level=level, reason="test", deterministic=deterministic)


@pytest.fixture
def test_settings():
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        ollama_host="http://ollama.test:11434",
        ollama_model="test-model",
        classifier_timeout=1.0,
        approval_ttl_seconds=300,
        tollgate_log_level="DEBUG",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gate(test_settings, clock):
    """Approval gate with a manually advanced clock."""
    return ApprovalGate(settings=test_settings, clock=clock)


@pytest.fixture
def l2():
    return make_classification(RiskLevel.L2)


@pytest.fixture
def ollama_clients(monkeypatch):
    """Replace the oracle's OllamaClient with stubs and collect every one built."""
    clients: list[StubOllamaClient] = []

    def build(settings=None):
        client = StubOllamaClient(settings)
        clients.append(client)
        return client

    monkeypatch.setattr("tollgate.approval.oracle.OllamaClient", build)
    return clients
