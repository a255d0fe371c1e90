"""Backoff-driven reconnection after the runtime connection fails."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta

from chatias_runtime.models.state import ConnectionState, utc_now

logger = logging.getLogger(__name__)


class ReconnectScheduler:
    """Owns the single pending reconnect timer.

    idle -> scheduled -> firing -> idle. While a retry chain is scheduled or
    firing, further ``schedule`` calls are no-ops, so timers never stack. The
    chain doubles its delay after each failed attempt up to ``max_delay_ms``;
    that backoff lives only inside the running chain, so the next chain starts
    again from the base delay.
    """

    def __init__(
        self,
        reconnect: Callable[[], Awaitable[object]],
        state: ConnectionState,
        base_delay_ms: int = 5000,
        max_delay_ms: int = 60000,
        enabled: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the scheduler.

        Args:
            reconnect: Coroutine function that attempts a connection and raises on failure
            state: Shared connection state (next_retry_at is owned here)
            base_delay_ms: First retry delay
            max_delay_ms: Upper bound for the doubled delay
            enabled: False in manual mode; scheduling becomes a no-op
            sleep: Awaitable sleep in seconds, injectable for tests
        """
        if base_delay_ms <= 0 or max_delay_ms < base_delay_ms:
            raise ValueError(f"Invalid reconnect delays: base={base_delay_ms}ms max={max_delay_ms}ms")
        self._reconnect = reconnect
        self._state = state
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.enabled = enabled
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_delay(self, delay_ms: int) -> int:
        return min(delay_ms * 2, self.max_delay_ms)

    def schedule(self, delay_ms: int | None = None) -> bool:
        """Arm a retry chain unless one is already running.

        Returns:
            True if a new chain was started
        """
        if not self.enabled or self._closed or self.pending:
            return False

        delay_ms = self.base_delay_ms if delay_ms is None else delay_ms
        self._task = asyncio.create_task(self._run(delay_ms))
        return True

    async def _run(self, delay_ms: int) -> None:
        while True:
            self._state.next_retry_at = utc_now() + timedelta(milliseconds=delay_ms)
            self._state.status_message = f"Reconnecting to the runtime in {delay_ms / 1000:.0f}s..."
            logger.info(f"Reconnect scheduled in {delay_ms}ms")

            await self._sleep(delay_ms / 1000)
            if self._closed:
                return

            try:
                await self._reconnect()
            except Exception as e:
                delay_ms = self.next_delay(delay_ms)
                logger.warning(f"Reconnect attempt failed: {e}")
                continue

            logger.info("Reconnected to the runtime")
            return

    async def cancel(self) -> None:
        """Stop any pending retry; nothing fires after this returns."""
        task, self._task = self._task, None
        self._state.next_retry_at = None
        if task is None or task.done():
            return
        # Cancelling from inside the chain (a reconnect that triggered shutdown)
        # must not await itself
        if task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.wait([task])

    def close(self) -> None:
        """Refuse new chains until reopen(); used while shutting down."""
        self._closed = True

    def reopen(self) -> None:
        self._closed = False
