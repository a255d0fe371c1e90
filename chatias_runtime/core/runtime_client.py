"""HTTP client for the agent runtime's session/prompt API."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from chatias_runtime.core.errors import RuntimeRequestError
from chatias_runtime.core.runtime_server import RuntimeServer
from chatias_runtime.lib.config import RuntimeSettings
from chatias_runtime.models.remote_model import RemoteModel

logger = logging.getLogger(__name__)


def _unwrap(data: Any) -> Any:
    """Runtime responses may arrive wrapped in a ``data`` envelope."""
    if isinstance(data, dict) and "data" in data and data["data"] is not None:
        return data["data"]
    return data


class RuntimeClient:
    """Thin async wrapper over the runtime's HTTP endpoints.

    Transport failures surface as httpx exceptions; HTTP error statuses are
    raised as RuntimeRequestError with the runtime's own message when it sends
    one.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        health_path: str = "/config",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Runtime server URL, e.g. http://127.0.0.1:4096
            timeout: Transport timeout in seconds for every request
            health_path: Lightweight endpoint used as a readiness check
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.health_path = health_path
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self.client.request(method, path, **kwargs)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RuntimeRequestError(
                f"Runtime returned HTTP {response.status_code} for {method} {path}: "
                f"{self._error_detail(response)}",
                status_code=response.status_code,
            ) from e

        if not response.content:
            return None
        try:
            return _unwrap(response.json())
        except ValueError:
            return response.text

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:500]
        if isinstance(body, dict):
            error = body.get("error") or body.get("message") or body.get("data")
            if isinstance(error, dict):
                error = error.get("message") or error.get("data") or error
            if error:
                return str(error)[:500]
        return str(body)[:500]

    async def ping(self) -> None:
        """Raise unless the runtime answers the readiness check."""
        await self._request("GET", self.health_path)

    async def get_session(self, session_id: str) -> Any:
        return await self._request("GET", f"/session/{session_id}")

    async def create_session(self, title: str, metadata: dict[str, Any] | None = None) -> Any:
        body: dict[str, Any] = {"title": title}
        if metadata:
            body["metadata"] = metadata
        return await self._request("POST", "/session", json=body)

    async def prompt(
        self,
        session_id: str,
        model: RemoteModel,
        parts: list[dict[str, Any]],
    ) -> Any:
        """Send message parts to a session using one specific model."""
        logger.debug(f"Prompting session {session_id} with {model}")
        return await self._request(
            "POST",
            f"/session/{session_id}/message",
            json={"model": model.to_wire(), "parts": parts},
        )

    async def close(self) -> None:
        await self.client.aclose()


@dataclass
class RuntimeHandle:
    """A live connection: the HTTP client plus the server process if we own it."""

    client: RuntimeClient
    server: RuntimeServer | None = None

    async def close(self) -> None:
        """Close the client, then stop the owned server; the first error is raised."""
        first_error: Exception | None = None
        try:
            await self.client.close()
        except Exception as e:
            first_error = e
        if self.server is not None:
            try:
                await self.server.stop()
            except Exception as e:
                first_error = first_error or e
        if first_error is not None:
            raise first_error


async def connect_runtime(settings: RuntimeSettings) -> RuntimeHandle:
    """Open a connection to the runtime described by settings.

    Attach mode checks the runtime once and fails fast. Spawn mode starts
    ``opencode serve`` and polls until it answers; the caller bounds the wait
    with the startup timeout. Anything half-built is torn down on failure or
    cancellation.
    """
    client = RuntimeClient(
        settings.base_url,
        timeout=settings.request_timeout_s,
        health_path=settings.health_path,
    )
    server: RuntimeServer | None = None
    try:
        if settings.spawn_server:
            server = RuntimeServer(settings.server_command, settings.hostname, settings.port)
            await server.start()
            await server.wait_until_ready(client.ping)
        else:
            await client.ping()
    except BaseException:
        await client.close()
        if server is not None:
            await server.stop()
        raise

    logger.info(f"Runtime reachable at {settings.base_url}")
    return RuntimeHandle(client=client, server=server)
