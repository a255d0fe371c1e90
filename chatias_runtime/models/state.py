"""Connection state shared by the orchestrator components."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from chatias_runtime.models.remote_model import RemoteModel
from chatias_runtime.models.summary import Attempt


class RuntimeStatus(str, Enum):
    """Lifecycle phase of the runtime connection."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    MANUAL = "manual"


STATUS_MESSAGES = {
    RuntimeStatus.CONNECTING: "Connecting to the agent runtime...",
    RuntimeStatus.CONNECTED: "Runtime connected and ready.",
    RuntimeStatus.MANUAL: "Runtime in manual mode. Set SDK_AUTO_CONNECT=true to connect automatically.",
}


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ConnectionState:
    """Mutable connection state owned by one orchestrator instance.

    Invariants:
        status == CONNECTED implies initialized
        status == ERROR implies not initialized

    The ``last_*`` summarization fields are for status displays only.
    """

    auto_connect: bool = True
    initialized: bool = False
    status: RuntimeStatus = RuntimeStatus.CONNECTING
    status_message: str = STATUS_MESSAGES[RuntimeStatus.CONNECTING]
    last_error: str | None = None
    connected_at: datetime | None = None
    next_retry_at: datetime | None = None
    session_id: str | None = None
    last_model: RemoteModel | None = None
    last_source: str | None = None
    last_attempts: list[Attempt] = field(default_factory=list)
    last_summary: str | None = None
    last_success_at: datetime | None = None

    def __post_init__(self):
        if not self.auto_connect:
            self.status = RuntimeStatus.MANUAL
            self.status_message = STATUS_MESSAGES[RuntimeStatus.MANUAL]

    @property
    def mode(self) -> str:
        return "auto" if self.auto_connect else "manual"

    def mark_connecting(self) -> None:
        self.initialized = False
        self.status = RuntimeStatus.CONNECTING
        self.status_message = STATUS_MESSAGES[RuntimeStatus.CONNECTING]

    def mark_connected(self) -> None:
        self.initialized = True
        self.status = RuntimeStatus.CONNECTED
        self.status_message = STATUS_MESSAGES[RuntimeStatus.CONNECTED]
        self.last_error = None
        self.connected_at = utc_now()
        self.next_retry_at = None

    def mark_error(self, reason: str) -> None:
        self.initialized = False
        self.status = RuntimeStatus.ERROR
        self.status_message = f"Runtime unavailable: {reason}"
        self.last_error = reason

    def mark_session(self, session_id: str) -> None:
        self.session_id = session_id
        self.status_message = f"Runtime connected • Session {session_id[:8]}..."

    def reset(self) -> None:
        """Back to the idle status for the configured mode (used on shutdown)."""
        idle = RuntimeStatus.CONNECTING if self.auto_connect else RuntimeStatus.MANUAL
        self.initialized = False
        self.status = idle
        self.status_message = STATUS_MESSAGES[idle]
        self.next_retry_at = None

    def log_context(self) -> dict[str, Any]:
        """Compact status and session stamp attached to log records."""
        context = {"status": self.status.value}
        if self.session_id:
            context["session"] = self.session_id[:12]
        return context

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready copy for status displays."""

        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "mode": self.mode,
            "auto_connect": self.auto_connect,
            "initialized": self.initialized,
            "status": self.status.value,
            "status_message": self.status_message,
            "last_error": self.last_error,
            "connected_at": iso(self.connected_at),
            "next_retry_at": iso(self.next_retry_at),
            "session_id": self.session_id,
            "last_model": self.last_model.to_wire() if self.last_model else None,
            "last_source": self.last_source,
            "last_attempts": [attempt.to_dict() for attempt in self.last_attempts],
            "last_summary": self.last_summary,
            "last_success_at": iso(self.last_success_at),
        }
