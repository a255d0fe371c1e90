"""Ownership of the single runtime connection."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from chatias_runtime.core.errors import ConnectError, describe
from chatias_runtime.core.reconnect import ReconnectScheduler
from chatias_runtime.core.runtime_client import RuntimeHandle
from chatias_runtime.models.state import ConnectionState

logger = logging.getLogger(__name__)

Connector = Callable[[], Awaitable[RuntimeHandle]]


class ConnectionManager:
    """Holds the runtime handle and runs at most one connection attempt at a time.

    Concurrent ``ensure_connected`` callers share one in-flight attempt task;
    the slot is cleared by the task itself when it settles. The handle is only
    published once a session has been prepared on it, so the fast path never
    returns a connection that is not ready.
    """

    def __init__(
        self,
        connector: Connector,
        state: ConnectionState,
        scheduler: ReconnectScheduler,
        startup_timeout_ms: int = 20000,
    ):
        """Initialize connection manager.

        Args:
            connector: Coroutine function that opens a RuntimeHandle
            state: Shared connection state
            scheduler: Reconnect scheduler notified on connection loss
            startup_timeout_ms: Bound on a single connection attempt
        """
        self._connector = connector
        self._state = state
        self._scheduler = scheduler
        self.startup_timeout_ms = startup_timeout_ms
        self._handle: RuntimeHandle | None = None
        self._connect_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        # Prepares a session on a fresh handle before it is published
        self.on_connected: Callable[[RuntimeHandle], Awaitable[object]] | None = None

    @property
    def connecting(self) -> bool:
        return self._connect_task is not None

    async def ensure_connected(self) -> RuntimeHandle:
        """Return the live handle, connecting first if needed.

        Raises:
            ConnectError: The runtime could not be reached within the startup timeout
        """
        if self._handle is not None:
            return self._handle

        async with self._lock:
            if self._handle is not None:
                return self._handle
            if self._connect_task is None:
                self._scheduler.reopen()
                self._state.mark_connecting()
                self._connect_task = asyncio.create_task(self._connect())
            task = self._connect_task

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and not (current and current.cancelling()):
                raise ConnectError("Connection attempt aborted by shutdown") from None
            raise

    async def _connect(self) -> RuntimeHandle:
        handle: RuntimeHandle | None = None
        try:
            logger.info("Connecting to the agent runtime")
            handle = await asyncio.wait_for(self._connector(), timeout=self.startup_timeout_ms / 1000)
            self._state.mark_connected()
            if self.on_connected is not None:
                await self.on_connected(handle)
            self._handle = handle
            logger.info("Runtime connection established")
            return handle
        except asyncio.CancelledError:
            if handle is not None:
                await self._close_handle(handle)
            raise
        except asyncio.TimeoutError:
            reason = f"Runtime not ready after {self.startup_timeout_ms}ms (startup timeout)"
            await self._fail(reason, handle)
            raise ConnectError(reason) from None
        except Exception as e:
            reason = describe(e)
            await self._fail(reason, handle)
            raise ConnectError(reason) from e
        finally:
            if self._connect_task is asyncio.current_task():
                self._connect_task = None

    async def _fail(self, reason: str, partial: RuntimeHandle | None) -> None:
        logger.warning(f"Runtime connection failed: {reason}")
        self._handle = None
        self._state.mark_error(reason)
        self._scheduler.schedule()
        if partial is not None:
            await self._close_handle(partial)

    def is_current(self, handle: RuntimeHandle) -> bool:
        return handle is not None and self._handle is handle

    async def invalidate(self, handle: RuntimeHandle, reason: str) -> bool:
        """Drop ``handle`` after a connection-level error and schedule a reconnect.

        Only the handle that is still published is dropped; a failure reported
        on an already replaced handle leaves the current connection alone.

        Returns:
            True if the handle was current and has been dropped
        """
        if not self.is_current(handle):
            logger.debug(f"Ignoring failure on a replaced runtime connection: {reason}")
            return False

        self._handle = None
        logger.warning(f"Runtime connection lost: {reason}")
        self._state.mark_error(reason)
        self._scheduler.schedule()
        await self._close_handle(handle)
        return True

    async def _close_handle(self, handle: RuntimeHandle) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.warning(f"Failed to close runtime connection: {e}")

    async def close(self) -> None:
        """Abort any in-flight attempt and close the held handle. Never raises."""
        task, self._connect_task = self._connect_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])

        handle, self._handle = self._handle, None
        if handle is not None:
            await self._close_handle(handle)
