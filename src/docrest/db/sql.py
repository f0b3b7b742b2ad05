"""Document store keeping every collection as JSON rows of a single SQL table."""

import logging
import uuid
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    delete,
    false,
    func,
    insert,
    or_,
    select,
    text,
    type_coerce,
    update,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Row
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from docrest.core.errors import InvalidPayload, PersistenceError, SchemaError
from docrest.db.helpers import (
    apply_payload,
    autokey_base,
    bump_version,
    project,
    slug_candidates,
    version_conflict,
)
from docrest.db.hooks import Hook, Hooks
from docrest.models import (
    ID_FIELD,
    RESERVED_FIELDS,
    VERSION_KEY,
    CollectionSchema,
    RefManyField,
    ScalarField,
    ScalarType,
)

logger = logging.getLogger(__name__)

metadata = MetaData()

documents = Table(
    "documents",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("collection", String(128), nullable=False),
    Column("id", String(64), nullable=False),
    Column("version", Integer, nullable=False, default=0),
    Column("body", JSON().with_variant(JSONB(), "postgresql"), nullable=False),
    UniqueConstraint("collection", "id", name="uq_documents_collection_id"),
)


def _body(document: Mapping[str, Any]) -> dict[str, Any]:
    return {name: value for name, value in document.items() if name not in RESERVED_FIELDS}


def _to_document(row: Row[Any]) -> dict[str, Any]:
    return {ID_FIELD: row.id, **row.body, VERSION_KEY: row.version}


class SqlCollection:
    def __init__(self, schema: CollectionSchema, engine: AsyncEngine) -> None:
        self.schema = schema
        self.hooks = Hooks()
        self._engine = engine

    def add_hook(self, event: str, hook: Hook) -> None:
        self.hooks.add(event, hook)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[AsyncConnection]:
        try:
            async with self._engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.error("document store failure on %s: %s", self.schema.name, exc)
            raise PersistenceError(f"Store operation on {self.schema.name} failed") from exc

    def _column(self, name: str) -> ColumnElement[Any]:
        if name == ID_FIELD:
            return documents.c.id
        if name == VERSION_KEY:
            return documents.c.version
        spec = self.schema.fields.get(name)
        if spec is None:
            raise PersistenceError(f"{self.schema.name} has no field {name!r}")
        if isinstance(spec, RefManyField):
            raise PersistenceError(f"Array field {self.schema.name}.{name} cannot be ordered")
        element = documents.c.body[name]
        if isinstance(spec, ScalarField):
            if spec.type is ScalarType.INTEGER:
                return element.as_integer()
            if spec.type is ScalarType.NUMBER:
                return element.as_float()
            if spec.type is ScalarType.BOOLEAN:
                return element.as_boolean()
        return element.as_string()

    def _contains(self, name: str, values: Sequence[Any]) -> ColumnElement[bool]:
        """Match rows whose array field ``name`` holds any of ``values``."""
        if self._engine.dialect.name == "postgresql":
            element = type_coerce(documents.c.body, JSONB)[name]
            return or_(false(), *(element.contains([value]) for value in values))
        items = func.json_each(documents.c.body, f'$."{name}"').table_valued("value")
        return select(items.c.value).where(items.c.value.in_(list(values))).correlate(documents).exists()

    def _where(self, criteria: Mapping[str, Any]) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = [documents.c.collection == self.schema.name]
        for name, condition in criteria.items():
            if isinstance(self.schema.fields.get(name), RefManyField):
                values = condition["$in"] if isinstance(condition, Mapping) and "$in" in condition else [condition]
                clauses.append(self._contains(name, values))
                continue
            column = self._column(name)
            if isinstance(condition, Mapping) and "$in" in condition:
                clauses.append(column.in_(list(condition["$in"])))
            elif condition is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == condition)
        return clauses

    async def _fetch(self, conn: AsyncConnection, doc_id: str) -> dict[str, Any] | None:
        stmt = select(documents.c.id, documents.c.version, documents.c.body).where(
            documents.c.collection == self.schema.name, documents.c.id == doc_id
        )
        row = (await conn.execute(stmt)).first()
        return _to_document(row) if row is not None else None

    async def _key_taken(self, conn: AsyncConnection, key: str, value: Any, doc_id: str) -> bool:
        stmt = (
            select(func.count())
            .select_from(documents)
            .where(*self._where({key: value}), documents.c.id != doc_id)
        )
        return int((await conn.execute(stmt)).scalar_one()) > 0

    async def _assign_alternate_key(self, conn: AsyncConnection, document: dict[str, Any]) -> None:
        key = self.schema.alternate_key
        if key is None:
            return
        base = autokey_base(self.schema, document)
        if base is not None:
            for candidate in slug_candidates(base):
                if not await self._key_taken(conn, key, candidate, document[ID_FIELD]):
                    document[key] = candidate
                    return
        value = document.get(key)
        if value is not None and await self._key_taken(conn, key, value, document[ID_FIELD]):
            raise InvalidPayload(f"Duplicate {key} for {self.schema.name}", {key: "value already exists"})

    async def count(self, criteria: Mapping[str, Any]) -> int:
        stmt = select(func.count()).select_from(documents).where(*self._where(criteria))
        async with self._connect() as conn:
            return int((await conn.execute(stmt)).scalar_one())

    async def find(
        self,
        criteria: Mapping[str, Any],
        skip: int = 0,
        limit: int | None = None,
        sort: Sequence[tuple[str, int]] | None = None,
        fields: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        stmt = select(documents.c.id, documents.c.version, documents.c.body).where(*self._where(criteria))
        for name, direction in sort or []:
            column = self._column(name)
            stmt = stmt.order_by(column.desc() if direction < 0 else column.asc())
        stmt = stmt.order_by(documents.c.seq)
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [project(_to_document(row), fields) for row in rows]

    async def find_one(self, criteria: Mapping[str, Any], fields: Sequence[str] | None = None) -> dict[str, Any] | None:
        found = await self.find(criteria, limit=1, fields=fields)
        return found[0] if found else None

    async def insert(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        document = apply_payload(self.schema, payload)
        document[ID_FIELD] = str(uuid.uuid4())
        async with self._connect() as conn:
            await self._assign_alternate_key(conn, document)
            bump_version(self.schema, document)
            await self.hooks.run("pre_save", document)
            await conn.execute(
                insert(documents).values(
                    collection=self.schema.name,
                    id=document[ID_FIELD],
                    version=document[VERSION_KEY],
                    body=_body(document),
                )
            )
        await self.hooks.run("post_save", document)
        return document

    async def update(self, record: Mapping[str, Any], payload: Mapping[str, Any]) -> dict[str, Any]:
        async with self._connect() as conn:
            current = await self._fetch(conn, record[ID_FIELD])
            if current is None:
                raise InvalidPayload(f"{self.schema.name} {record[ID_FIELD]} no longer exists")
            expected = record.get(VERSION_KEY, current[VERSION_KEY])
            if expected != current[VERSION_KEY]:
                raise version_conflict(self.schema, current, expected)
            document = apply_payload(self.schema, payload, current)
            await self._assign_alternate_key(conn, document)
            bump_version(self.schema, document)
            await self.hooks.run("pre_save", document)
            result = await conn.execute(
                update(documents)
                .where(
                    documents.c.collection == self.schema.name,
                    documents.c.id == document[ID_FIELD],
                    documents.c.version == expected,
                )
                .values(version=document[VERSION_KEY], body=_body(document))
            )
            if result.rowcount == 0:
                raise version_conflict(self.schema, current, expected)
        await self.hooks.run("post_save", document)
        return document

    async def remove(self, record: Mapping[str, Any]) -> None:
        document = dict(record)
        await self.hooks.run("pre_remove", document)
        async with self._connect() as conn:
            await conn.execute(
                delete(documents).where(
                    documents.c.collection == self.schema.name,
                    documents.c.id == record[ID_FIELD],
                )
            )
        await self.hooks.run("post_remove", document)


class SqlDocumentStore:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self.collections: dict[str, SqlCollection] = {}

    def register(self, schema: CollectionSchema) -> SqlCollection:
        collection = SqlCollection(schema, self._engine)
        self.collections[schema.name] = collection
        return collection

    def collection(self, name: str) -> SqlCollection:
        try:
            return self.collections[name]
        except KeyError:
            raise SchemaError(f"Collection {name!r} is not registered with the store") from None

    async def ensure_ready(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("document store ready (%d collections)", len(self.collections))

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError):
            return False
        return True

    async def dispose(self) -> None:
        await self._engine.dispose()
