"""
Health check endpoints for liveness and readiness probes.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from marketplace_chat.core.config import Settings, get_settings
from marketplace_chat.core.database import check_db_connection
from marketplace_chat.core.logging import get_logger
from marketplace_chat.schemas.chat import HealthResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/live",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Always returns 200 to indicate the service is alive.",
)
async def liveness() -> HealthResponse:
    """Liveness probe - always returns 200."""
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness probe",
    description="Returns 200 if the service is ready to handle traffic.",
)
async def readiness(
    request: Request,
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
) -> HealthResponse:
    """
    Readiness probe - checks if the service can handle traffic.

    Checks:
    - The database is reachable
    - SESSION_SECRET is configured, so viewers can be identified
    - The change feed transport is connected (reported, not required)
    """
    checks = {}
    is_ready = True

    engine = getattr(request.app.state, "engine", None)
    db_ok = check_db_connection(engine)
    checks["database"] = "ok" if db_ok else "failed"
    if not db_ok:
        is_ready = False
        logger.warning("Readiness check failed: database not reachable")

    secret_ok = settings.is_session_secret_configured
    checks["session_secret"] = "ok" if secret_ok else "not configured"
    if not secret_ok:
        is_ready = False
        logger.warning("Readiness check failed: SESSION_SECRET not configured")

    # Live delivery degrades to polling, so a dropped feed does not fail readiness
    feed = request.app.state.change_feed
    checks["change_feed"] = "ok" if feed.connected else "disconnected"

    if is_ready:
        return HealthResponse(status="ok", checks=checks)
    response.status_code = 503
    return HealthResponse(status="not ready", checks=checks)
