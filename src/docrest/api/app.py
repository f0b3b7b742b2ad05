from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from docrest.api.lifespan import lifespan
from docrest.api.registry import RouteRegistry
from docrest.api.routes.health import router as health_router
from docrest.api.routes.root import router as root_router
from docrest.api.schemas import ErrorResponse
from docrest.core.errors import PersistenceError, RestError
from docrest.core.ports.store import DocumentStore

logger = logging.getLogger(__name__)


async def _rest_error(request: Request, exc: RestError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def _persistence_error(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.exception("persistence failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(status="error", message="Internal persistence error").model_dump(),
    )


def create_app(store: DocumentStore, registry: RouteRegistry) -> FastAPI:
    """Build the application serving every route held by ``registry``."""
    app = FastAPI(
        title="docrest",
        description="REST endpoints generated from collection schemas.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.registry = registry

    app.add_exception_handler(RestError, _rest_error)
    app.add_exception_handler(PersistenceError, _persistence_error)

    app.include_router(root_router, include_in_schema=False)
    app.include_router(health_router, include_in_schema=False)
    registry.register_routes(app)
    return app
