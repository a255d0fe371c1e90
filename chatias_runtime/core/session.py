"""Logical runtime session bound to the connection."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from chatias_runtime.core.errors import SessionError, describe
from chatias_runtime.core.runtime_client import RuntimeHandle
from chatias_runtime.models.state import ConnectionState

logger = logging.getLogger(__name__)


def extract_session_id(payload: Any) -> str | None:
    """Session id from a create response: ``{"id": ...}`` or ``{"session": {"id": ...}}``."""
    if not isinstance(payload, dict):
        return None
    session_id = payload.get("id")
    if not session_id and isinstance(payload.get("session"), dict):
        session_id = payload["session"].get("id")
    return str(session_id) if session_id else None


class SessionManager:
    """Keeps one valid session id on the runtime.

    The runtime is the source of truth: a cached id is checked with a lookup
    before every use and silently replaced when the lookup fails.
    """

    def __init__(
        self,
        ensure_connected: Callable[[], Awaitable[RuntimeHandle]],
        state: ConnectionState,
        label: str,
        metadata: dict[str, Any] | None = None,
    ):
        self._ensure_connected = ensure_connected
        self._state = state
        self.label = label
        self.metadata = dict(metadata or {})
        self._lock = asyncio.Lock()

    async def ensure_session(self) -> str:
        """Return a session id that exists on the runtime.

        Raises:
            ConnectError: No connection could be established
            SessionError: The session could not be created
        """
        handle = await self._ensure_connected()
        return await self.prepare(handle)

    async def prepare(self, handle: RuntimeHandle) -> str:
        """Validate or create the session on a specific handle."""
        async with self._lock:
            session_id = self._state.session_id
            if session_id:
                try:
                    await handle.client.get_session(session_id)
                    return session_id
                except Exception as e:
                    logger.info(f"Session {session_id} no longer valid ({describe(e)}), recreating")
                    self._state.session_id = None

            return await self._create(handle)

    async def _create(self, handle: RuntimeHandle) -> str:
        try:
            payload = await handle.client.create_session(self.label, self.metadata)
        except Exception as e:
            raise SessionError(f"Failed to create runtime session: {describe(e)}") from e

        session_id = extract_session_id(payload)
        if not session_id:
            raise SessionError(f"Runtime returned a session without an id: {payload!r}")

        self._state.mark_session(session_id)
        logger.info(f"Created runtime session {session_id}")
        return session_id
