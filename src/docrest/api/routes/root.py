from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from docrest.api.dependencies import get_registry
from docrest.api.registry import RouteRegistry

router = APIRouter()


@router.get("/")
async def root(registry: RouteRegistry = Depends(get_registry)) -> dict[str, Any]:
    """Discovery endpoint listing every collection and its generated routes."""
    collections: dict[str, dict[str, Any]] = {}
    for descriptor in registry.routes:
        segment, action = descriptor.name.split(":", 1)
        entry = collections.setdefault(segment, {"href": f"{registry.prefix}/{segment}", "routes": []})
        entry["routes"].append({"name": action, "method": descriptor.method, "path": descriptor.path})
    return {
        "meta": {
            "title": "docrest",
            "description": "REST endpoints generated from collection schemas.",
            "version": "0.1.0",
        },
        "collections": collections,
        "links": {
            "self": "/",
            "health": "/health",
            "openapi": "/openapi.json",
            "docs": "/docs",
        },
    }
