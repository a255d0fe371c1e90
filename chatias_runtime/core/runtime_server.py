"""
Runtime server process - optional local `opencode serve` lifecycle.

Used when SDK_SPAWN_SERVER is enabled: the bridge starts the runtime itself
instead of attaching to one that is already running.
"""

import asyncio
import logging
import shutil
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

# Poll interval while waiting for the spawned server to answer
STARTUP_POLL_INTERVAL = 0.5
# Grace period between SIGTERM and SIGKILL on stop
STOP_GRACE_PERIOD = 5.0


class RuntimeServer:
    """A runtime server child process bound to hostname:port."""

    def __init__(self, command: str, hostname: str, port: int):
        self.command = command
        self.hostname = hostname
        self.port = port
        self._process: asyncio.subprocess.Process | None = None

    def _build_cmd(self) -> list[str]:
        executable = shutil.which(self.command) or self.command
        return [executable, "serve", "--hostname", self.hostname, "--port", str(self.port)]

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        cmd = self._build_cmd()
        logger.info(f"Starting runtime server: {' '.join(cmd)}")
        self._process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )

    async def wait_until_ready(self, check: Callable[[], Awaitable[None]]) -> None:
        """Poll ``check`` until it succeeds.

        No deadline here; the connection manager bounds the whole connect.
        Raises if the process exits before becoming ready.
        """
        while True:
            if not self.running:
                code = self._process.returncode if self._process else None
                raise ConnectionError(f"Runtime server exited during startup (code {code})")
            try:
                await check()
                logger.info(f"Runtime server ready on {self.hostname}:{self.port}")
                return
            except Exception as e:
                logger.debug(f"Runtime server not ready yet: {e}")
            await asyncio.sleep(STARTUP_POLL_INTERVAL)

    async def stop(self) -> None:
        process, self._process = self._process, None
        if process is None or process.returncode is not None:
            return

        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=STOP_GRACE_PERIOD)
        except asyncio.TimeoutError:
            logger.warning("Force killing runtime server")
            process.kill()
            await process.wait()
        logger.info("Runtime server stopped")
