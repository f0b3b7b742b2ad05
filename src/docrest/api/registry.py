"""Route descriptors and the registry that binds them to a FastAPI router."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, FastAPI

from docrest.api.handlers import CollectionHandlers, as_endpoint
from docrest.core.errors import SchemaError
from docrest.core.policy import FieldPolicy
from docrest.core.ports.store import DocumentStore, ModelHandle
from docrest.core.relationships import is_relationship

logger = logging.getLogger(__name__)

ACTIONS = ("list", "show", "create", "update", "delete")

Middleware = Callable[..., Any]

_SPLIT = re.compile(r"[,\s]+")


@dataclass(frozen=True)
class RouteDescriptor:
    method: str
    path: str
    middleware: tuple[Middleware, ...]
    handler: Callable[..., Any]
    name: str


def _names(value: str | Iterable[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [name for name in _SPLIT.split(value.strip()) if name]
    return [name for name in value if name]


class RouteRegistry:
    """Accumulates generated routes and binds them, in order, to a host router."""

    def __init__(self, store: DocumentStore | None, prefix: str = "/api") -> None:
        self.store = store
        self.prefix = prefix.rstrip("/")
        self._routes: list[RouteDescriptor] = []
        self._policies: dict[str, FieldPolicy] = {}
        self._collections: list[str] = []
        self._bound = False

    @property
    def routes(self) -> tuple[RouteDescriptor, ...]:
        return tuple(self._routes)

    @property
    def collections(self) -> tuple[str, ...]:
        return tuple(self._collections)

    def policy(self, name: str) -> FieldPolicy:
        """Return the field policy of ``name``, computing it on first use."""
        if name not in self._policies:
            if self.store is None:
                raise SchemaError("A document store is required before policies can be computed")
            self._policies[name] = FieldPolicy.from_schema(self.store.collection(name).schema)
        return self._policies[name]

    def _resolve_policies(self, name: str, depth: int = 2) -> None:
        policy = self.policy(name)
        if depth == 0:
            return
        for target in policy.relationships.values():
            self._resolve_policies(target, depth - 1)

    def add_routes(
        self,
        model: ModelHandle | None,
        methods: str | Sequence[str] | None,
        middleware: Mapping[str, Sequence[Middleware]] | None = None,
        relationships: str | Sequence[str] | None = None,
    ) -> list[RouteDescriptor]:
        """Build the route descriptors for one collection and append them.

        ``methods`` is drawn from ``list show create update delete``;
        ``middleware`` maps those action names to FastAPI dependencies run
        before the handler; ``relationships`` names relationship fields that
        get their own ``GET /{collection}/{key}/{relationship}`` listing.
        """
        if self.store is None:
            raise SchemaError("A document store is required before routes can be added")
        if self._bound:
            raise SchemaError("Routes were already registered; the registry is frozen")
        if model is None:
            raise SchemaError("A model is required to add routes")
        actions = _names(methods)
        if not actions:
            raise SchemaError(f"No methods given for {model.schema.name}")
        unknown = [action for action in actions if action not in ACTIONS]
        if unknown:
            raise SchemaError(f"Unknown methods for {model.schema.name}: {', '.join(unknown)}")
        middleware = middleware or {}
        unknown = [action for action in middleware if action not in ACTIONS]
        if unknown:
            raise SchemaError(f"Middleware given for unknown methods: {', '.join(unknown)}")

        schema = model.schema
        related = _names(relationships)
        for name in related:
            if not is_relationship(schema, name):
                raise SchemaError(f"{schema.name}.{name} is not a relationship field")

        self._resolve_policies(schema.name)
        handlers = CollectionHandlers(self.store, model, self._policies)

        collection_path = f"{self.prefix}/{schema.path_segment}"
        item_path = f"{collection_path}/{{{handlers.key_param}}}"
        segment = schema.path_segment

        added: list[RouteDescriptor] = []

        def route(method: str, path: str, action: str, label: str, endpoint: Callable[..., Any]) -> None:
            chain = tuple(middleware.get(action, ()))
            added.append(RouteDescriptor(method, path, chain, endpoint, f"{segment}:{label}"))

        if "list" in actions:
            route("GET", collection_path, "list", "list", as_endpoint(handlers.list_records, f"{segment}_list"))
            for name in related:
                endpoint = as_endpoint(handlers.related(name), f"{segment}_{name}")
                route("GET", f"{item_path}/{name}", "list", name, endpoint)
        elif related:
            logger.warning("relationship routes for %s need the list method; skipped %s", schema.name, related)
        if "show" in actions:
            route("GET", item_path, "show", "show", as_endpoint(handlers.show, f"{segment}_show"))
        if "create" in actions:
            route("POST", collection_path, "create", "create", as_endpoint(handlers.create, f"{segment}_create"))
        if "update" in actions:
            update = as_endpoint(handlers.update, f"{segment}_update")
            route("PUT", item_path, "update", "update", update)
            route("PATCH", item_path, "update", "patch", update)
        if "delete" in actions:
            route("DELETE", item_path, "delete", "delete", as_endpoint(handlers.delete, f"{segment}_delete"))

        for descriptor in added:
            logger.debug("route %s %s (%d middleware)", descriptor.method, descriptor.path, len(descriptor.middleware))
        self._routes.extend(added)
        if schema.name not in self._collections:
            self._collections.append(schema.name)
        return added

    def register_routes(self, router: APIRouter | FastAPI) -> None:
        """Bind every descriptor to ``router`` in the order it was added."""
        for descriptor in self._routes:
            router.add_api_route(
                descriptor.path,
                descriptor.handler,
                methods=[descriptor.method],
                dependencies=[Depends(dependency) for dependency in descriptor.middleware],
                name=descriptor.name,
                response_model=None,
                tags=[descriptor.name.split(":")[0]],
            )
        self._bound = True
        logger.info("registered %d routes for %d collections", len(self._routes), len(self._collections))
