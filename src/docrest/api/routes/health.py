import logging

from fastapi import APIRouter, Depends, Response, status

from docrest.api.dependencies import get_registry, get_store
from docrest.api.registry import RouteRegistry
from docrest.api.schemas import HealthResponse, ReadinessResponse
from docrest.core.ports.store import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
@router.get("/healthz/live", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    return HealthResponse()


@router.get("/healthz/ready", response_model=ReadinessResponse)
async def readiness(
    response: Response,
    store: DocumentStore = Depends(get_store),
    registry: RouteRegistry = Depends(get_registry),
) -> ReadinessResponse:
    """Report whether the document store answers and which collections are served."""
    up = await store.ping()
    if not up:
        logger.warning("readiness check failed: %s did not answer", type(store).__name__)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status="ok" if up else "degraded",
        database="up" if up else "down",
        store=type(store).__name__,
        collections=list(registry.collections),
    )
