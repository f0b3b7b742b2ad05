"""Shared fixtures and helpers for tests."""

from pathlib import Path

import pytest

from docrest.db import InMemoryDocumentStore
from docrest.models import CollectionSchema

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Shared schemas
# ---------------------------------------------------------------------------


@pytest.fixture
def user_schema() -> CollectionSchema:
    """A user with a hidden email and a server-controlled role."""
    return CollectionSchema.model_validate(
        {
            "name": "User",
            "fields": {
                "name": {"type": "string", "required": True},
                "email": {"type": "string", "visible": False},
                "role": {"type": "string", "editable": False, "default": "member"},
                "age": {"type": "integer"},
            },
        }
    )


@pytest.fixture
def post_schema() -> CollectionSchema:
    """A post addressed by slug, referencing its author and readers."""
    return CollectionSchema.model_validate(
        {
            "name": "Post",
            "alternate_key": "slug",
            "autokey_from": "title",
            "version_field": "revision",
            "fields": {
                "title": {"type": "string", "required": True},
                "slug": {"type": "string"},
                "author": {"kind": "ref", "ref": "User"},
                "readers": {"kind": "ref_many", "items": {"ref": "User"}},
                "published": {"type": "boolean", "default": False},
                "revision": {"type": "integer", "editable": False},
                "secret": {"type": "string", "visible": False},
            },
        }
    )


@pytest.fixture
def in_memory_store(user_schema: CollectionSchema, post_schema: CollectionSchema) -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    store.register(user_schema)
    store.register(post_schema)
    return store
