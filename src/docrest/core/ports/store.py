from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from docrest.models import CollectionSchema

Record = dict[str, Any]
Criteria = Mapping[str, Any]
SortSpec = Sequence[tuple[str, int]]


class ModelHandle(Protocol):
    schema: CollectionSchema

    async def count(self, criteria: Criteria) -> int: ...

    async def find(
        self,
        criteria: Criteria,
        skip: int = 0,
        limit: int | None = None,
        sort: SortSpec | None = None,
        fields: Sequence[str] | None = None,
    ) -> list[Record]: ...

    async def find_one(self, criteria: Criteria, fields: Sequence[str] | None = None) -> Record | None: ...

    async def insert(self, payload: Mapping[str, Any]) -> Record: ...

    async def update(self, record: Record, payload: Mapping[str, Any]) -> Record: ...

    async def remove(self, record: Record) -> None: ...


class DocumentStore(Protocol):
    def register(self, schema: CollectionSchema) -> ModelHandle: ...

    def collection(self, name: str) -> ModelHandle: ...

    async def ensure_ready(self) -> None: ...

    async def ping(self) -> bool: ...

    async def dispose(self) -> None: ...
