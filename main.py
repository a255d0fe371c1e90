"""
ChatIAS Runtime Bridge API Server

Exposes the runtime orchestrator (connection status, session and best-effort
summarization against the agent runtime) to the control panel's route handlers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from chatias_runtime import __version__
from chatias_runtime.api.handlers.health import check_health
from chatias_runtime.api.handlers.runtime import router as runtime_router
from chatias_runtime.core.orchestrator import RuntimeOrchestrator
from chatias_runtime.lib.config import ConfigLoader
from chatias_runtime.lib.logger import attach_connection_context, detach_connection_context, setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the orchestrator and start its background connect; tear it down on shutdown."""
    settings = app.state.settings
    logger.info(f"Starting runtime bridge for {settings.base_url}")

    orchestrator = getattr(app.state, "orchestrator", None) or RuntimeOrchestrator(settings)
    app.state.orchestrator = orchestrator
    context_filter = attach_connection_context(orchestrator.state.log_context)
    await orchestrator.start()

    yield

    logger.info("Shutting down runtime bridge")
    await orchestrator.shutdown()
    detach_connection_context(context_filter)


def create_app(settings=None, orchestrator: RuntimeOrchestrator | None = None) -> FastAPI:
    """Create the FastAPI app.

    Args:
        settings: RuntimeSettings; loaded from the environment when omitted
        orchestrator: Pre-built orchestrator (tests inject one with a fake runtime)
    """
    if settings is None:
        settings = orchestrator.settings if orchestrator else ConfigLoader().load()

    app = FastAPI(
        title="ChatIAS Runtime Bridge",
        description="Connection, session and summarization bridge to the agent runtime",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Unwrap ErrorResponse bodies so errors sit at the top level as {"error": {...}}."""
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            return JSONResponse(status_code=exc.status_code, content=exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": {"message": str(exc.detail), "type": "api_error", "code": None}},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": {"message": "Internal server error", "type": "server_error", "code": "internal_error"}},
        )

    @app.get("/")
    async def root():
        return {
            "message": "ChatIAS Runtime Bridge",
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "status": "/runtime/status",
                "connect": "/runtime/connect",
                "session": "/runtime/session",
                "summarize": "/runtime/summarize",
            },
        }

    @app.get("/health")
    async def health(request: Request):
        return await check_health(getattr(request.app.state, "orchestrator", None))

    app.include_router(runtime_router)
    return app


_settings = ConfigLoader().load()
setup_logging(
    log_level=_settings.log_level,
    log_file=_settings.log_file,
    structured=_settings.log_structured,
)
app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=9000)
