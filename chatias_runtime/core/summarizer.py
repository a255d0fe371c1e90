"""Best-effort summarization over a prioritized list of remote models."""

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from chatias_runtime.core.connection import ConnectionManager
from chatias_runtime.core.errors import (
    DEFAULT_CONNECTION_TOKENS,
    ErrorKind,
    classify,
    describe,
)
from chatias_runtime.core.response_sanitizer import format_response, sanitize
from chatias_runtime.core.session import SessionManager
from chatias_runtime.models.remote_model import RemoteModel
from chatias_runtime.models.state import ConnectionState, utc_now
from chatias_runtime.models.summary import Attempt, SummaryResult

logger = logging.getLogger(__name__)

SUMMARY_INSTRUCTION = "Summarize in natural language and highlight the next steps."
ALL_MODELS_FAILED = "All remote models failed."
CONNECTION_LOST = "Runtime connection lost before any model could be tried."


def build_parts(prompt: str, meta: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
    """Message parts for a summarize call.

    Caller-supplied ``parts`` are sent as-is. Otherwise at most one context
    part is added (a local summary, else a serialized agent result) followed
    by the prompt and the summary instruction.
    """
    meta = meta or {}
    if meta.get("parts"):
        return list(meta["parts"])

    label = meta.get("agent_label") or "agent"
    parts: list[dict[str, Any]] = []
    if meta.get("local_summary"):
        parts.append({"type": "text", "text": f"Local summary from {label}:\n{meta['local_summary']}"})
    elif meta.get("agent_result") is not None:
        result = json.dumps(meta["agent_result"], indent=2, ensure_ascii=False, default=str)
        parts.append({"type": "text", "text": f"Result from {label}:\n{result}"})

    parts.append({"type": "text", "text": f"{prompt}\n\n{SUMMARY_INSTRUCTION}"})
    return parts


class FallbackSummarizer:
    """Tries remote models in order until one produces a summary.

    A model-level failure moves on to the next model. A connection-level
    failure invalidates the connection and ends the loop, since every other
    model would go over the same dead connection. The loop also stops when
    another caller has dropped the connection this call is using.
    """

    def __init__(
        self,
        connections: ConnectionManager,
        sessions: SessionManager,
        state: ConnectionState,
        models: Sequence[RemoteModel],
        connection_tokens: Iterable[str] = DEFAULT_CONNECTION_TOKENS,
    ):
        self._connections = connections
        self._sessions = sessions
        self._state = state
        self.models = tuple(models)
        self.connection_tokens = tuple(connection_tokens)

    async def summarize(self, prompt: str, meta: Mapping[str, Any] | None = None) -> SummaryResult | None:
        """Summarize ``prompt`` with the first remote model that answers.

        Returns:
            None when no models are configured, otherwise a SummaryResult.
            Failures are reported in the result, never raised.
        """
        if not self.models:
            return None

        try:
            handle = await self._connections.ensure_connected()
            session_id = await self._sessions.ensure_session()
        except Exception as e:
            logger.warning(f"Summarization skipped, runtime not ready: {e}")
            self._record_failure([], describe(e))
            return SummaryResult(success=False, attempts=[], error=describe(e))

        parts = build_parts(prompt, meta)
        attempts: list[Attempt] = []

        for model in self.models:
            if not self._connections.is_current(handle):
                logger.warning(f"Runtime connection dropped before trying {model}, abandoning fallback")
                break
            try:
                payload = await handle.client.prompt(session_id, model, parts)
            except Exception as e:
                reason = describe(e)
                attempts.append(Attempt(model=model, error=reason))
                if classify(e, self.connection_tokens) is ErrorKind.CONNECTION:
                    logger.warning(f"Connection-level failure on {model}, abandoning fallback: {reason}")
                    await self._connections.invalidate(handle, reason)
                    break
                if not self._connections.is_current(handle):
                    logger.warning(f"Runtime connection dropped while {model} was running, abandoning fallback")
                    break
                logger.warning(f"Model {model} failed, trying next: {reason}")
                continue

            summary = sanitize(format_response(payload))
            self._state.last_model = model
            self._state.last_source = "remote"
            self._state.last_attempts = attempts
            self._state.last_summary = summary
            self._state.last_success_at = utc_now()
            logger.info(
                f"Summary produced by {model} after {len(attempts)} failed attempts",
                extra={"runtime": {"model": str(model), "failed_attempts": len(attempts)}},
            )
            return SummaryResult(success=True, attempts=attempts, summary=summary, model=model)

        if attempts:
            error = attempts[-1].error
        elif not self._connections.is_current(handle):
            error = CONNECTION_LOST
        else:
            error = ALL_MODELS_FAILED
        logger.warning(
            f"Summarization failed after {len(attempts)} attempts: {error}",
            extra={"runtime": {"failed_attempts": len(attempts)}},
        )
        self._record_failure(attempts, error or ALL_MODELS_FAILED)
        return SummaryResult(success=False, attempts=attempts, error=None if attempts else error)

    def _record_failure(self, attempts: list[Attempt], error: str) -> None:
        self._state.last_source = "remote"
        self._state.last_attempts = attempts
        self._state.last_model = None
        self._state.last_error = error
