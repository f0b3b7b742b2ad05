"""Request handlers generated for one collection.

Each handler runs the request → query → response pipeline against the
collection's ``ModelHandle``. Domain errors are rendered as ``{status, message}``
bodies by :func:`as_endpoint`; anything else propagates to the application's
error handlers.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from docrest.api.querystring import QueryOptions, parse_query
from docrest.core.errors import InvalidPayload, NotFound, RestError, VersionConflict
from docrest.core.policy import FieldPolicy
from docrest.core.populate import populate
from docrest.core.ports.store import DocumentStore, ModelHandle, Record
from docrest.core.shaping import shape
from docrest.models import ID_FIELD

logger = logging.getLogger(__name__)

Handler = Callable[[Request, Response], Awaitable[Any]]


def as_endpoint(handler: Handler, name: str) -> Callable[[Request, Response], Awaitable[Any]]:
    """Wrap ``handler`` so domain errors become JSON bodies carrying middleware headers."""

    async def endpoint(request: Request, response: Response) -> Any:
        try:
            return await handler(request, response)
        except RestError as exc:
            logger.debug("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
            error = JSONResponse(status_code=exc.status_code, content=exc.to_body())
            error.headers.raw.extend(response.headers.raw)
            return error

    endpoint.__name__ = name
    return endpoint


async def read_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidPayload("Request body must be a JSON object") from exc
    if not isinstance(body, dict):
        raise InvalidPayload("Request body must be a JSON object")
    return body


def _ref_id(value: Any) -> Any:
    if isinstance(value, Mapping) and ID_FIELD in value:
        return value[ID_FIELD]
    return value


async def present(
    store: DocumentStore,
    policy: FieldPolicy,
    policies: Mapping[str, FieldPolicy],
    records: list[Record],
    fields: Sequence[str],
    requested_populate: Sequence[str],
) -> list[dict[str, Any]]:
    """Populate the requested relationships and shape every record for output."""
    names = policy.populatable(requested_populate, fields)
    nested = await populate(store, policy, policies, records, names) if names else {}
    return [shape(record, fields, nested) for record in records]


class CollectionHandlers:
    """The list/show/create/update/delete pipelines bound to one collection."""

    def __init__(self, store: DocumentStore, model: ModelHandle, policies: Mapping[str, FieldPolicy]) -> None:
        self.store = store
        self.model = model
        self.schema = model.schema
        self.policies = policies
        self.policy = policies[self.schema.name]

    @property
    def key_param(self) -> str:
        return self.schema.singular

    async def _load(self, request: Request, fields: Sequence[str] | None = None) -> Record:
        key = request.path_params[self.key_param]
        record = await self.model.find_one({self.schema.lookup_field: key}, fields=fields)
        if record is None:
            raise NotFound(self.schema.singular, key)
        return record

    async def _present(
        self, records: list[Record], fields: Sequence[str], options: QueryOptions
    ) -> list[dict[str, Any]]:
        return await present(self.store, self.policy, self.policies, records, fields, options.populate)

    def _flatten(self, body: Mapping[str, Any]) -> dict[str, Any]:
        """Accept either bare ids or populated objects for reference fields."""
        flat = dict(body)
        for name in self.policy.relationships:
            if name not in flat:
                continue
            value = flat[name]
            flat[name] = [_ref_id(item) for item in value] if isinstance(value, list) else _ref_id(value)
        return flat

    def _check_version(self, record: Record, body: Mapping[str, Any]) -> None:
        version_field = self.schema.version_field
        if version_field is None or body.get(version_field) is None:
            return
        try:
            submitted = int(body[version_field])
        except (TypeError, ValueError) as exc:
            raise InvalidPayload(
                f"Invalid {version_field} for {self.schema.singular}", {version_field: "expected an integer"}
            ) from exc
        stored = int(record.get(version_field) or 0)
        if submitted < stored:
            key = str(record.get(self.schema.lookup_field, record[ID_FIELD]))
            logger.warning("rejected stale update of %s %s (%d < %d)", self.schema.name, key, submitted, stored)
            raise VersionConflict(self.schema.singular, key, submitted, stored)

    async def list_records(self, request: Request, response: Response) -> Any:
        options = parse_query(request.query_params)
        criteria = self.policy.criteria(options.filters)
        fields = self.policy.select(options.select)

        total = await self.model.count(criteria)
        records = await self.model.find(
            criteria,
            skip=options.skip,
            limit=options.limit,
            sort=self.policy.sortable(options.sort),
            fields=fields,
        )
        response.headers["total"] = str(total)
        return await self._present(records, fields, options)

    def related(self, relationship: str) -> Handler:
        """Build the handler listing the records referenced by ``relationship``."""
        target = self.policy.relationships[relationship]
        many = relationship in self.policy.many

        async def list_related(request: Request, response: Response) -> Any:
            parent = await self._load(request, fields=(ID_FIELD, relationship))
            value = parent.get(relationship)
            if many:
                ids = list(value or [])
            else:
                ids = [value] if value is not None else []

            target_policy = self.policies[target]
            handle = self.store.collection(target)
            options = parse_query(request.query_params)
            criteria = target_policy.criteria(options.filters)
            if ID_FIELD in criteria:
                ids = [ref for ref in ids if ref == criteria[ID_FIELD]]
            criteria[ID_FIELD] = {"$in": ids}
            fields = target_policy.select(options.select)
            sort = target_policy.sortable(options.sort)

            total = await handle.count(criteria)
            if sort:
                records = await handle.find(criteria, skip=options.skip, limit=options.limit, sort=sort, fields=fields)
            else:
                # Keep the order the references are stored in on the parent.
                position: dict[str, int] = {}
                for index, ref in enumerate(ids):
                    position.setdefault(ref, index)
                records = await handle.find(criteria, fields=fields)
                records.sort(key=lambda record: position[record[ID_FIELD]])
                end = options.skip + options.limit if options.limit is not None else None
                records = records[options.skip : end]

            response.headers["total"] = str(total)
            return await present(self.store, target_policy, self.policies, records, fields, options.populate)

        return list_related

    async def show(self, request: Request, response: Response) -> Any:
        options = parse_query(request.query_params)
        fields = self.policy.select(options.select)
        record = await self._load(request, fields=fields)
        return (await self._present([record], fields, options))[0]

    async def create(self, request: Request, response: Response) -> Any:
        options = parse_query(request.query_params)
        fields = self.policy.select(options.select)
        payload = self.policy.strip_uneditable(self._flatten(await read_body(request)))

        created = await self.model.insert(payload)
        logger.debug("created %s %s", self.schema.name, created[ID_FIELD])
        record = await self.model.find_one({ID_FIELD: created[ID_FIELD]}, fields=fields)
        if record is None:
            raise NotFound(self.schema.singular, created[ID_FIELD])
        response.status_code = 201
        return (await self._present([record], fields, options))[0]

    async def update(self, request: Request, response: Response) -> Any:
        options = parse_query(request.query_params)
        fields = self.policy.select(options.select)
        record = await self._load(request)
        body = self._flatten(await read_body(request))
        self._check_version(record, body)

        await self.model.update(record, self.policy.strip_uneditable(body))
        fresh = await self.model.find_one({ID_FIELD: record[ID_FIELD]}, fields=fields)
        if fresh is None:
            raise NotFound(self.schema.singular, record[ID_FIELD])
        return (await self._present([fresh], fields, options))[0]

    async def delete(self, request: Request, response: Response) -> Any:
        record = await self._load(request)
        await self.model.remove(record)
        logger.debug("deleted %s %s", self.schema.name, record[ID_FIELD])
        return {"message": f"Successfully deleted {self.schema.path_segment}"}
