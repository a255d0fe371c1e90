"""Runtime bridge request/response schemas."""

from typing import Any

from pydantic import BaseModel, Field


class SummarizeRequest(BaseModel):
    """Summarize request.

    At most one of ``local_summary`` / ``agent_result`` is used as context, in
    that order of preference. ``parts`` replaces the built message entirely.
    """

    prompt: str = Field(min_length=1)
    local_summary: str | None = None
    agent_result: Any = None
    agent_label: str | None = None
    parts: list[dict[str, Any]] | None = None

    def meta(self) -> dict[str, Any]:
        return self.model_dump(exclude={"prompt"}, exclude_none=True)


class ConnectResponse(BaseModel):
    connected: bool
    session_id: str | None = None
    status: dict[str, Any]


class SessionResponse(BaseModel):
    session_id: str


class ErrorDetail(BaseModel):
    message: str
    type: str
    code: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


def runtime_unavailable_error(message: str, code: str = "runtime_unavailable") -> ErrorResponse:
    """Error body for operations that need a live runtime connection."""
    return ErrorResponse(error=ErrorDetail(message=message, type="runtime_error", code=code))
