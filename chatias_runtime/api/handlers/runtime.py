"""Runtime bridge endpoints: status, connect, session and summarize."""

import logging

from fastapi import APIRouter, HTTPException, Request

from chatias_runtime.api.models.runtime import (
    ConnectResponse,
    SessionResponse,
    SummarizeRequest,
    runtime_unavailable_error,
)
from chatias_runtime.core.errors import ConnectError, SessionError
from chatias_runtime.core.orchestrator import RuntimeOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/runtime", tags=["runtime"])


def get_orchestrator(request: Request) -> RuntimeOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=503,
            detail=runtime_unavailable_error("Runtime orchestrator not initialized").model_dump(),
        )
    return orchestrator


@router.get("/status")
async def runtime_status(request: Request):
    """Read-only connection state for status displays."""
    return get_orchestrator(request).snapshot()


@router.post("/connect", response_model=ConnectResponse)
async def connect(request: Request):
    """Connect now (or reuse the live connection)."""
    orchestrator = get_orchestrator(request)
    try:
        await orchestrator.ensure_connected()
    except ConnectError as e:
        logger.warning(f"Connect request failed: {e}")
        raise HTTPException(status_code=503, detail=runtime_unavailable_error(str(e)).model_dump())

    return ConnectResponse(
        connected=True,
        session_id=orchestrator.state.session_id,
        status=orchestrator.snapshot(),
    )


@router.post("/session", response_model=SessionResponse)
async def session(request: Request):
    """Return a valid runtime session id, creating one if needed."""
    orchestrator = get_orchestrator(request)
    try:
        session_id = await orchestrator.ensure_session()
    except (ConnectError, SessionError) as e:
        logger.warning(f"Session request failed: {e}")
        code = "session_unavailable" if isinstance(e, SessionError) else "runtime_unavailable"
        raise HTTPException(status_code=503, detail=runtime_unavailable_error(str(e), code).model_dump())

    return SessionResponse(session_id=session_id)


@router.post("/summarize")
async def summarize(body: SummarizeRequest, request: Request):
    """Best-effort summary; failures are reported in the body with HTTP 200."""
    result = await get_orchestrator(request).summarize(body.prompt, body.meta())
    if result is None:
        return {"success": False, "source": None, "summary": None, "attempts": [], "error": "No remote models configured"}
    return result.to_dict()
