"""Pytest configuration and fixtures for the test suite.

Provides:
- Custom markers
- FakeRuntime: an in-memory stand-in for the agent runtime's session API
- Settings and orchestrator factories wired to the fake runtime
"""

import asyncio
import logging

import pytest

from chatias_runtime.core.errors import RuntimeRequestError
from chatias_runtime.core.orchestrator import RuntimeOrchestrator
from chatias_runtime.core.runtime_client import RuntimeHandle
from chatias_runtime.lib.config import RuntimeSettings
from chatias_runtime.models.remote_model import RemoteModel

logger = logging.getLogger(__name__)

MODEL_A = RemoteModel("anthropic", "model-a")
MODEL_B = RemoteModel("openai", "model-b")
MODEL_C = RemoteModel("ollama", "model-c")
DEFAULT_REPLY = {"parts": [{"type": "text", "text": "Summary"}]}


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


class FakeRuntimeClient:
    """Implements the RuntimeClient calls the orchestrator uses."""

    def __init__(self, runtime: "FakeRuntime"):
        self.runtime = runtime
        self.closed = False

    async def get_session(self, session_id):
        self.runtime.get_calls.append(session_id)
        if session_id not in self.runtime.sessions:
            raise RuntimeRequestError(f"Session not found: {session_id}", status_code=404)
        return {"id": session_id}

    async def create_session(self, title, metadata=None):
        self.runtime.create_calls.append((title, metadata))
        if self.runtime.create_error is not None:
            raise self.runtime.create_error
        if self.runtime.create_payload is not None:
            return self.runtime.create_payload
        session_id = f"ses_{len(self.runtime.create_calls):04d}abcdef"
        self.runtime.sessions.add(session_id)
        return {"id": session_id, "title": title}

    async def prompt(self, session_id, model, parts):
        if self.closed:
            raise RuntimeError("Cannot send a request, as the client has been closed.")
        self.runtime.prompt_calls.append((session_id, model, parts))
        outcome = self.runtime.responses.get(model.model_id, DEFAULT_REPLY)
        if callable(outcome):
            outcome = await outcome()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self):
        self.closed = True
        if self.runtime.close_error is not None:
            raise self.runtime.close_error


class FakeRuntime:
    """In-memory runtime. ``connect`` is the orchestrator's connector."""

    def __init__(self):
        self.connect_calls = 0
        self.connect_errors: list[BaseException] = []
        self.gate: asyncio.Event | None = None
        self.hang = False
        self.sessions: set[str] = set()
        self.get_calls: list[str] = []
        self.create_calls: list[tuple] = []
        self.create_error: BaseException | None = None
        self.create_payload = None
        self.prompt_calls: list[tuple] = []
        self.responses: dict = {}
        self.close_error: BaseException | None = None
        self.clients: list[FakeRuntimeClient] = []

    def fail_connects(self, *errors: BaseException) -> None:
        """Queue errors for the next connect attempts (one per attempt)."""
        self.connect_errors.extend(errors)

    async def connect(self) -> RuntimeHandle:
        self.connect_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.hang:
            await asyncio.Event().wait()
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        client = FakeRuntimeClient(self)
        self.clients.append(client)
        return RuntimeHandle(client=client)

    def prompted_models(self) -> list[RemoteModel]:
        return [model for _, model, _ in self.prompt_calls]


@pytest.fixture
def runtime():
    """Fresh fake runtime per test."""
    return FakeRuntime()


@pytest.fixture
def make_settings():
    """Factory for RuntimeSettings with test-friendly defaults."""

    def _make(**overrides) -> RuntimeSettings:
        values = {
            "remote_models": (MODEL_A, MODEL_B, MODEL_C),
            "startup_timeout_ms": 2000,
        }
        values.update(overrides)
        return RuntimeSettings(**values)

    return _make


@pytest.fixture
def make_orchestrator(runtime, make_settings):
    """Factory for orchestrators connected to the fake runtime.

    Tests must ``await orchestrator.shutdown()`` so no reconnect task outlives them.
    """

    def _make(sleep=None, **overrides) -> RuntimeOrchestrator:
        kwargs = {"connector": runtime.connect}
        if sleep is not None:
            kwargs["sleep"] = sleep
        return RuntimeOrchestrator(make_settings(**overrides), **kwargs)

    return _make


@pytest.fixture
def recorded_sleep():
    """Sleep that records requested delays (in ms) and returns immediately."""
    delays: list[int] = []

    async def _sleep(seconds: float) -> None:
        delays.append(round(seconds * 1000))
        await asyncio.sleep(0)

    _sleep.delays = delays
    return _sleep


@pytest.fixture
def wait_until():
    """Yield to the event loop until predicate() holds."""

    async def _wait(predicate, max_iterations: int = 2000) -> None:
        for _ in range(max_iterations):
            if predicate():
                return
            await asyncio.sleep(0)
        raise AssertionError("condition not reached")

    return _wait


@pytest.fixture
def models():
    """The three remote models configured by make_settings, in priority order."""
    return MODEL_A, MODEL_B, MODEL_C
