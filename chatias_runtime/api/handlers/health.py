"""Health check endpoint handler."""

import logging

from chatias_runtime.api.models.health import HealthStatus, ServiceStatus
from chatias_runtime.core.orchestrator import RuntimeOrchestrator
from chatias_runtime.models.state import RuntimeStatus

logger = logging.getLogger(__name__)


async def check_health(orchestrator: RuntimeOrchestrator | None) -> HealthStatus:
    """Report bridge health from the current connection state.

    Reads state only; never triggers a connection attempt.
    """
    services = {}

    if orchestrator is None:
        services["runtime"] = ServiceStatus(
            name="agent_runtime",
            status="unhealthy",
            message="Runtime orchestrator not initialized",
        )
    else:
        state = orchestrator.state
        if state.status is RuntimeStatus.CONNECTED:
            runtime_status = "healthy"
        elif state.status is RuntimeStatus.ERROR:
            runtime_status = "unhealthy"
        else:
            runtime_status = "unknown"
        services["runtime"] = ServiceStatus(
            name="agent_runtime",
            status=runtime_status,
            message=state.status_message,
        )

        models = orchestrator.settings.remote_models
        services["summarizer"] = ServiceStatus(
            name="summarizer",
            status="healthy" if models else "unknown",
            message=f"{len(models)} remote models configured" if models else "No remote models configured",
        )

    statuses = [s.status for s in services.values()]
    if all(s == "healthy" for s in statuses):
        overall_status = "healthy"
    elif all(s == "unhealthy" for s in statuses):
        overall_status = "unhealthy"
    else:
        overall_status = "degraded"

    logger.debug(f"Health check: {overall_status}")

    mode = orchestrator.state.mode if orchestrator is not None else None
    return HealthStatus(status=overall_status, services=services, mode=mode)
