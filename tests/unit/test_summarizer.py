"""Unit tests for best-effort summarization with model fallback."""

import asyncio

import httpx
import pytest
from conftest import DEFAULT_REPLY

from chatias_runtime.core.errors import RuntimeRequestError
from chatias_runtime.core.summarizer import SUMMARY_INSTRUCTION, build_parts
from chatias_runtime.models.state import RuntimeStatus


def model_error(model, message="Model not found"):
    return RuntimeRequestError(
        f"Runtime returned HTTP 400 for POST /session/ses/message: {message}: {model}",
        status_code=400,
    )


@pytest.mark.asyncio
async def test_no_models_returns_none_without_connecting(runtime, make_orchestrator):
    orchestrator = make_orchestrator(remote_models=())

    assert await orchestrator.summarize("Summarize the pipeline run") is None
    assert runtime.connect_calls == 0

    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_first_model_success(runtime, make_orchestrator, models):
    orchestrator = make_orchestrator()

    result = await orchestrator.summarize("Summarize the pipeline run")

    assert result.success is True
    assert result.summary == "Summary"
    assert result.model == models[0]
    assert result.attempts == []
    assert runtime.prompted_models() == [models[0]]

    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_model_error_falls_through_to_next_model(runtime, make_orchestrator, models):
    model_a, model_b, _ = models
    runtime.responses[model_a.model_id] = model_error(model_a)
    orchestrator = make_orchestrator()

    result = await orchestrator.summarize("Summarize the pipeline run")

    assert result.success is True
    assert result.model == model_b
    assert [attempt.model for attempt in result.attempts] == [model_a]
    assert "Model not found" in result.attempts[0].error
    assert runtime.prompted_models() == [model_a, model_b]

    state = orchestrator.state
    assert state.last_model == model_b
    assert state.last_source == "remote"
    assert state.last_summary == "Summary"
    assert state.last_success_at is not None
    assert state.last_attempts == result.attempts

    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_connection_error_stops_fallback(runtime, make_orchestrator, models):
    model_a, _, _ = models
    runtime.responses[model_a.model_id] = httpx.ConnectError("All connection attempts failed")
    orchestrator = make_orchestrator()

    result = await orchestrator.summarize("Summarize the pipeline run")

    assert result.success is False
    assert [attempt.model for attempt in result.attempts] == [model_a]
    assert runtime.prompted_models() == [model_a]
    assert runtime.clients[0].closed
    assert orchestrator.state.status is RuntimeStatus.ERROR
    assert orchestrator.state.last_error == "All connection attempts failed"
    assert orchestrator.reconnect_pending

    # The next call reconnects instead of reusing the dropped connection
    del runtime.responses[model_a.model_id]
    result = await orchestrator.summarize("Summarize the pipeline run")

    assert result.success is True
    assert runtime.connect_calls == 2

    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_all_models_fail(runtime, make_orchestrator, models):
    for model in models:
        runtime.responses[model.model_id] = model_error(model, "Provider rejected request")
    orchestrator = make_orchestrator()

    result = await orchestrator.summarize("Summarize the pipeline run")

    assert result.success is False
    assert [attempt.model for attempt in result.attempts] == list(models)
    assert result.summary is None
    state = orchestrator.state
    assert state.last_model is None
    assert state.last_error == result.attempts[-1].error
    assert state.status is RuntimeStatus.CONNECTED

    data = result.to_dict()
    assert "summary" not in data
    assert data["attempts"][0]["providerID"] == models[0].provider_id
    assert data["attempts"][0]["modelID"] == models[0].model_id

    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_connect_failure_is_reported_not_raised(runtime, make_orchestrator):
    runtime.fail_connects(ConnectionRefusedError("ECONNREFUSED"))
    orchestrator = make_orchestrator()

    result = await orchestrator.summarize("Summarize the pipeline run")

    assert result.success is False
    assert result.attempts == []
    assert result.error == "ECONNREFUSED"
    assert runtime.prompt_calls == []

    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_summary_is_sanitized(runtime, make_orchestrator, models):
    runtime.responses[models[0].model_id] = {
        "info": {"id": "msg_1"},
        "parts": [
            {"type": "step-start"},
            {"type": "text", "text": "```markdown\nDeploy finished.\nNext: verify the canary.\n```"},
            {"type": "step-finish"},
        ],
    }
    orchestrator = make_orchestrator()

    result = await orchestrator.summarize("Summarize the pipeline run")

    assert result.summary == "Deploy finished.\nNext: verify the canary."

    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_prompt_uses_current_session_and_built_parts(runtime, make_orchestrator):
    orchestrator = make_orchestrator()
    meta = {"local_summary": "3 jobs ran", "agent_label": "scheduler"}

    await orchestrator.summarize("What changed?", meta)

    session_id, _, parts = runtime.prompt_calls[0]
    assert session_id == orchestrator.state.session_id
    assert parts == build_parts("What changed?", meta)


class TestBuildParts:
    def test_prompt_only(self):
        assert build_parts("Status?") == [{"type": "text", "text": f"Status?\n\n{SUMMARY_INSTRUCTION}"}]

    def test_local_summary_preferred_over_agent_result(self):
        parts = build_parts(
            "Status?",
            {"local_summary": "All green", "agent_result": {"ok": True}, "agent_label": "monitor"},
        )

        assert len(parts) == 2
        assert parts[0]["text"] == "Local summary from monitor:\nAll green"

    def test_agent_result_serialized_with_default_label(self):
        parts = build_parts("Status?", {"agent_result": {"failed": 2, "name": "café"}})

        assert parts[0]["text"] == 'Result from agent:\n{\n  "failed": 2,\n  "name": "café"\n}'
        assert parts[1]["text"].startswith("Status?")

    def test_explicit_parts_are_sent_verbatim(self):
        custom = [{"type": "text", "text": "raw"}]

        assert build_parts("ignored", {"parts": custom, "local_summary": "x"}) == custom


@pytest.mark.asyncio
async def test_concurrent_summary_stops_when_connection_is_dropped(runtime, make_orchestrator, models, wait_until):
    """A call whose connection was dropped by another call does not try the remaining models."""
    model_a = models[0]
    release = asyncio.Event()
    calls = []

    async def model_a_reply():
        calls.append(1)
        if len(calls) == 1:
            await release.wait()
            return model_error(model_a, "Model overloaded")
        return httpx.ConnectError("All connection attempts failed")

    runtime.responses[model_a.model_id] = model_a_reply
    orchestrator = make_orchestrator()
    await orchestrator.ensure_connected()

    slow = asyncio.create_task(orchestrator.summarize("First"))
    await wait_until(lambda: len(calls) == 1)
    fast = await orchestrator.summarize("Second")
    release.set()
    slow_result = await slow

    assert [attempt.model for attempt in fast.attempts] == [model_a]
    assert [attempt.model for attempt in slow_result.attempts] == [model_a]
    assert "Model overloaded" in slow_result.attempts[0].error
    assert runtime.prompted_models() == [model_a, model_a]

    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_late_failure_on_old_connection_keeps_new_one(runtime, make_orchestrator, models, wait_until):
    model_a = models[0]
    release = asyncio.Event()
    calls = []

    async def model_a_reply():
        calls.append(1)
        if len(calls) == 1:
            await release.wait()
            return httpx.ReadError("Server disconnected")
        if len(calls) == 2:
            return httpx.ConnectError("All connection attempts failed")
        return DEFAULT_REPLY

    runtime.responses[model_a.model_id] = model_a_reply
    orchestrator = make_orchestrator()
    await orchestrator.ensure_connected()

    stale = asyncio.create_task(orchestrator.summarize("First"))
    await wait_until(lambda: len(calls) == 1)
    dropped = await orchestrator.summarize("Second")
    recovered = await orchestrator.summarize("Third")
    release.set()
    stale_result = await stale

    assert dropped.success is False
    assert recovered.success is True
    assert stale_result.success is False
    assert runtime.connect_calls == 2
    assert runtime.clients[0].closed
    assert not runtime.clients[1].closed
    assert orchestrator.state.status is RuntimeStatus.CONNECTED

    await orchestrator.shutdown()
