"""Unit tests for the spawned runtime server process."""

import shutil

import pytest

from chatias_runtime.core.runtime_server import RuntimeServer


def test_command_line():
    server = RuntimeServer("definitely-not-installed", "127.0.0.1", 4096)

    assert server._build_cmd() == ["definitely-not-installed", "serve", "--hostname", "127.0.0.1", "--port", "4096"]
    assert not server.running


@pytest.mark.asyncio
@pytest.mark.skipif(shutil.which("false") is None, reason="needs the `false` utility")
async def test_exit_during_startup_is_reported():
    server = RuntimeServer("false", "127.0.0.1", 4096)
    checks = []

    async def check():
        checks.append(1)
        raise ConnectionRefusedError("not listening")

    await server.start()
    with pytest.raises(ConnectionError, match="exited during startup"):
        await server.wait_until_ready(check)

    await server.stop()
    assert not server.running


@pytest.mark.asyncio
async def test_stop_without_start_is_noop():
    await RuntimeServer("opencode", "127.0.0.1", 4096).stop()
