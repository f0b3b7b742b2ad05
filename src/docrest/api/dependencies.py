from __future__ import annotations

from fastapi import Request

from docrest.api.registry import RouteRegistry
from docrest.core.ports.store import DocumentStore


def get_store(request: Request) -> DocumentStore:
    """Return the ``DocumentStore`` the application was built with."""
    return request.app.state.store


def get_registry(request: Request) -> RouteRegistry:
    return request.app.state.registry
