"""Summarization outcome types."""

from dataclasses import dataclass, field
from typing import Any

from chatias_runtime.models.remote_model import RemoteModel


@dataclass
class Attempt:
    """One model tried during a single summarize call."""

    model: RemoteModel
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {**self.model.to_wire(), "error": self.error}


@dataclass
class SummaryResult:
    """Result of a summarize call.

    ``summary`` and ``model`` are only set on success. ``error`` is set when the
    call failed before any model could be tried (no connection or session).
    """

    success: bool
    attempts: list[Attempt] = field(default_factory=list)
    source: str = "remote"
    summary: str | None = None
    model: RemoteModel | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "source": self.source,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }
        if self.success:
            data["summary"] = self.summary
            data["model"] = self.model.to_wire() if self.model else None
        if self.error:
            data["error"] = self.error
        return data
