"""
QuickNotes Backend — Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Asks each collaborator for its own lightweight health check
       (SELECT 1 against the record store, a writability check on the blob
       store root) and aggregates the result.
Who:   Docker health checks, load balancers, monitoring.

Status levels:
    - healthy:   record store and blob store usable (HTTP 200)
    - unhealthy: either one is not (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app import __version__
from app.dependencies import Services, get_services
from app.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Initialized once when the module loads
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "A dependency is unavailable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(services: Services = Depends(get_services)):
    database_ok = await services.notes.health_check()
    storage_ok = await services.blobs.health_check()
    if not storage_ok:
        logger.warning("Health check: storage root %s is not writable", services.blobs.storage_root)

    body = HealthResponse(
        status="healthy" if database_ok and storage_ok else "unhealthy",
        version=__version__,
        database="connected" if database_ok else "disconnected",
        storage="writable" if storage_ok else "unavailable",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if body.status != "healthy":
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
