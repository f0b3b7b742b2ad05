"""JSON configuration describing the collections an application serves.

Example::

    {
      "prefix": "/api",
      "collections": [
        {
          "collection": {"name": "Post", "alternate_key": "slug", "autokey_from": "title",
                         "fields": {"title": {"type": "string"}, "slug": {"type": "string"}}},
          "methods": ["list", "show", "create", "update", "delete"]
        }
      ]
    }
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field

from docrest.api.registry import RouteRegistry
from docrest.core.ports.store import DocumentStore
from docrest.models import CollectionSchema

logger = logging.getLogger(__name__)

DEFAULT_API_PREFIX = "/api"


class CollectionConfig(BaseModel):
    collection: CollectionSchema
    methods: list[str] = Field(default_factory=lambda: ["list", "show", "create", "update", "delete"])
    relationships: list[str] = Field(default_factory=list)


class ApiConfig(BaseModel):
    prefix: str | None = None
    collections: list[CollectionConfig] = Field(default_factory=list)


def load_config(path: str | Path) -> ApiConfig:
    config = ApiConfig.model_validate_json(Path(path).read_text(encoding="utf-8"))
    logger.info("loaded %d collections from %s", len(config.collections), path)
    return config


def build_registry(config: ApiConfig, store: DocumentStore, prefix: str | None = None) -> RouteRegistry:
    """Register every configured collection with ``store`` and add its routes.

    All schemas are registered before any routes are added so relationships
    may point at collections declared later in the file.
    """
    if prefix is None:
        prefix = config.prefix or os.getenv("DOCREST_API_PREFIX", DEFAULT_API_PREFIX)
    for entry in config.collections:
        store.register(entry.collection)
    registry = RouteRegistry(store, prefix=prefix)
    for entry in config.collections:
        registry.add_routes(
            store.collection(entry.collection.name),
            entry.methods,
            relationships=entry.relationships,
        )
    return registry
