"""Fixtures for integration tests against a temporary SQLite database."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from docrest.db import SqlDocumentStore, get_engine
from docrest.models import CollectionSchema


@pytest.fixture
def test_db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'docrest.db'}"


@pytest_asyncio.fixture
async def database(test_db_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Per-test engine so each event loop gets its own connection pool."""
    engine = get_engine(test_db_url)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def store(
    database: AsyncEngine, user_schema: CollectionSchema, post_schema: CollectionSchema
) -> AsyncGenerator[SqlDocumentStore, None]:
    """Per-test SqlDocumentStore with both collections registered and the table created."""
    instance = SqlDocumentStore(database)
    instance.register(user_schema)
    instance.register(post_schema)
    await instance.ensure_ready()
    yield instance
