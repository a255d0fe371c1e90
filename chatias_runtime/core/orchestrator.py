"""Runtime orchestrator - the one object callers talk to.

Wires the connection, reconnect, session and summarization components around
a single ConnectionState. Each instance owns its own state, so tests (and
multiple runtimes in one process) never share anything.
"""

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from chatias_runtime.core.connection import ConnectionManager, Connector
from chatias_runtime.core.reconnect import ReconnectScheduler
from chatias_runtime.core.runtime_client import RuntimeHandle, connect_runtime
from chatias_runtime.core.session import SessionManager
from chatias_runtime.core.summarizer import FallbackSummarizer
from chatias_runtime.lib.config import RuntimeSettings
from chatias_runtime.models.state import ConnectionState
from chatias_runtime.models.summary import SummaryResult

logger = logging.getLogger(__name__)


class RuntimeOrchestrator:
    """Connection, session and summarization facade for the agent runtime."""

    def __init__(
        self,
        settings: RuntimeSettings,
        connector: Connector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            settings: Runtime bridge settings
            connector: Opens a RuntimeHandle; defaults to connect_runtime(settings)
            sleep: Sleep used between reconnect attempts (injectable for tests)
        """
        self.settings = settings
        self.state = ConnectionState(auto_connect=settings.auto_connect)

        self._scheduler = ReconnectScheduler(
            self._reconnect,
            self.state,
            base_delay_ms=settings.retry_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            enabled=settings.auto_connect,
            sleep=sleep,
        )
        self._connections = ConnectionManager(
            connector or functools.partial(connect_runtime, settings),
            self.state,
            self._scheduler,
            startup_timeout_ms=settings.startup_timeout_ms,
        )
        self._sessions = SessionManager(
            self._connections.ensure_connected,
            self.state,
            label=settings.session_label,
            metadata=settings.session_metadata,
        )
        self._connections.on_connected = self._sessions.prepare
        self._startup_task: asyncio.Task | None = None
        self._summarizer = FallbackSummarizer(
            self._connections,
            self._sessions,
            self.state,
            settings.remote_models,
            connection_tokens=settings.connection_error_tokens,
        )

    async def _reconnect(self) -> RuntimeHandle:
        return await self._connections.ensure_connected()

    @property
    def reconnect_pending(self) -> bool:
        return self._scheduler.pending

    async def ensure_connected(self) -> RuntimeHandle:
        return await self._connections.ensure_connected()

    async def ensure_session(self) -> str:
        return await self._sessions.ensure_session()

    async def summarize(self, prompt: str, meta: Mapping[str, Any] | None = None) -> SummaryResult | None:
        return await self._summarizer.summarize(prompt, meta)

    def snapshot(self) -> dict[str, Any]:
        return {
            **self.state.snapshot(),
            "connecting": self._connections.connecting,
            "reconnect_pending": self._scheduler.pending,
        }

    async def start(self) -> asyncio.Task | None:
        """Connect in the background when auto-connect is enabled.

        Returns immediately with the connect task (None in manual mode).
        Failure is logged and left to the reconnect scheduler.
        """
        if not self.settings.auto_connect:
            logger.info("Runtime bridge in manual mode; not connecting on startup")
            return None
        if self._startup_task is None or self._startup_task.done():
            self._startup_task = asyncio.create_task(self.ensure_connected())
            self._startup_task.add_done_callback(self._log_startup_result)
        return self._startup_task

    @staticmethod
    def _log_startup_result(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Automatic runtime connection failed: {error}")

    async def shutdown(self) -> None:
        """Stop retries, close the connection and reset to the idle status.

        Close errors are logged, never raised.
        """
        self._scheduler.close()
        await self._scheduler.cancel()
        task, self._startup_task = self._startup_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])
        await self._connections.close()
        self.state.reset()
        logger.info("Runtime bridge shut down")
