from docrest.db.engine import get_engine
from docrest.db.hooks import Hooks
from docrest.db.memory import InMemoryCollection, InMemoryDocumentStore
from docrest.db.sql import SqlCollection, SqlDocumentStore, documents, metadata

__all__ = [
    "Hooks",
    "InMemoryCollection",
    "InMemoryDocumentStore",
    "SqlCollection",
    "SqlDocumentStore",
    "documents",
    "get_engine",
    "metadata",
]
