import copy
import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from docrest.core.errors import InvalidPayload, SchemaError
from docrest.db.helpers import (
    apply_payload,
    autokey_base,
    bump_version,
    matches,
    project,
    slug_candidates,
    sort_documents,
    version_conflict,
)
from docrest.db.hooks import Hook, Hooks
from docrest.models import ID_FIELD, VERSION_KEY, CollectionSchema


class InMemoryCollection:
    def __init__(self, schema: CollectionSchema) -> None:
        self.schema = schema
        self.documents: dict[str, dict[str, Any]] = {}
        self.hooks = Hooks()

    def add_hook(self, event: str, hook: Hook) -> None:
        self.hooks.add(event, hook)

    async def count(self, criteria: Mapping[str, Any]) -> int:
        return sum(1 for doc in self.documents.values() if matches(doc, criteria))

    async def find(
        self,
        criteria: Mapping[str, Any],
        skip: int = 0,
        limit: int | None = None,
        sort: Sequence[tuple[str, int]] | None = None,
        fields: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        found = [doc for doc in self.documents.values() if matches(doc, criteria)]
        found = sort_documents(found, sort)
        end = skip + limit if limit is not None else None
        return [copy.deepcopy(project(doc, fields)) for doc in found[skip:end]]

    async def find_one(self, criteria: Mapping[str, Any], fields: Sequence[str] | None = None) -> dict[str, Any] | None:
        found = await self.find(criteria, limit=1, fields=fields)
        return found[0] if found else None

    async def insert(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        document = apply_payload(self.schema, payload)
        document[ID_FIELD] = str(uuid.uuid4())
        self._assign_alternate_key(document)
        bump_version(self.schema, document)
        await self.hooks.run("pre_save", document)
        self.documents[document[ID_FIELD]] = document
        await self.hooks.run("post_save", document)
        return copy.deepcopy(document)

    async def update(self, record: Mapping[str, Any], payload: Mapping[str, Any]) -> dict[str, Any]:
        current = self.documents.get(record[ID_FIELD])
        if current is None:
            raise InvalidPayload(f"{self.schema.name} {record[ID_FIELD]} no longer exists")
        expected = record.get(VERSION_KEY, current[VERSION_KEY])
        if expected != current[VERSION_KEY]:
            raise version_conflict(self.schema, current, expected)
        document = apply_payload(self.schema, payload, current)
        self._assign_alternate_key(document)
        bump_version(self.schema, document)
        await self.hooks.run("pre_save", document)
        self.documents[document[ID_FIELD]] = document
        await self.hooks.run("post_save", document)
        return copy.deepcopy(document)

    async def remove(self, record: Mapping[str, Any]) -> None:
        document = self.documents.get(record[ID_FIELD])
        if document is None:
            return
        await self.hooks.run("pre_remove", document)
        del self.documents[document[ID_FIELD]]
        await self.hooks.run("post_remove", document)

    def _assign_alternate_key(self, document: dict[str, Any]) -> None:
        key = self.schema.alternate_key
        if key is None:
            return
        base = autokey_base(self.schema, document)
        if base is not None:
            taken = {doc.get(key) for doc in self.documents.values() if doc[ID_FIELD] != document[ID_FIELD]}
            document[key] = next(candidate for candidate in slug_candidates(base) if candidate not in taken)
            return
        value = document.get(key)
        if value is None:
            return
        for doc in self.documents.values():
            if doc[ID_FIELD] != document[ID_FIELD] and doc.get(key) == value:
                raise InvalidPayload(f"Duplicate {key} for {self.schema.name}", {key: "value already exists"})


class InMemoryDocumentStore:
    def __init__(self) -> None:
        self.collections: dict[str, InMemoryCollection] = {}

    def register(self, schema: CollectionSchema) -> InMemoryCollection:
        collection = InMemoryCollection(schema)
        self.collections[schema.name] = collection
        return collection

    def collection(self, name: str) -> InMemoryCollection:
        try:
            return self.collections[name]
        except KeyError:
            raise SchemaError(f"Collection {name!r} is not registered with the store") from None

    async def ensure_ready(self) -> None:
        pass

    async def ping(self) -> bool:
        return True

    async def dispose(self) -> None:
        pass
