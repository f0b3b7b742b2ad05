"""Field-level visibility and editability rules derived from a collection schema."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from docrest.core.errors import InvalidQuery
from docrest.core.relationships import relationship_fields
from docrest.models import (
    ID_FIELD,
    INTERNAL_FIELDS,
    RESERVED_FIELDS,
    CollectionSchema,
    RefField,
    RefManyField,
    ScalarField,
    ScalarType,
)

ASCENDING = 1
DESCENDING = -1

_TRUE_VALUES = frozenset({"true", "1", "yes"})
_FALSE_VALUES = frozenset({"false", "0", "no"})


def compute_selected(schema: CollectionSchema) -> tuple[str, ...]:
    """Return the identifier followed by every field not explicitly hidden."""
    visible = [name for name, spec in schema.fields.items() if spec.visible is not False]
    return (ID_FIELD, *(name for name in visible if name not in INTERNAL_FIELDS))


def compute_uneditable(schema: CollectionSchema) -> frozenset[str]:
    """Return every field whose ``editable`` flag (or whose element's flag) is false."""
    names: set[str] = set()
    for name, spec in schema.fields.items():
        if spec.editable is False:
            names.add(name)
        elif isinstance(spec, RefManyField) and spec.items.editable is False:
            names.add(name)
    return frozenset(names)


def cast_scalar(value: str, scalar_type: ScalarType) -> Any:
    """Convert a query-string value to the Python type of a scalar field."""
    if scalar_type is ScalarType.INTEGER:
        return int(value)
    if scalar_type is ScalarType.NUMBER:
        return float(value)
    if scalar_type is ScalarType.BOOLEAN:
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"not a boolean: {value!r}")
    return value


@dataclass(frozen=True)
class FieldPolicy:
    collection: str
    selected: tuple[str, ...]
    uneditable: frozenset[str]
    relationships: Mapping[str, str] = field(default_factory=dict)
    many: frozenset[str] = frozenset()
    filterable: Mapping[str, ScalarType] = field(default_factory=dict)

    @classmethod
    def from_schema(cls, schema: CollectionSchema) -> FieldPolicy:
        selected = compute_selected(schema)
        filterable: dict[str, ScalarType] = {ID_FIELD: ScalarType.STRING}
        for name in selected:
            spec = schema.fields.get(name)
            if isinstance(spec, ScalarField):
                filterable[name] = spec.type
            elif isinstance(spec, RefField | RefManyField):
                # Array fields match records whose array contains the value.
                filterable[name] = ScalarType.STRING
        return cls(
            collection=schema.name,
            selected=selected,
            uneditable=compute_uneditable(schema),
            relationships=relationship_fields(schema),
            many=frozenset(name for name, spec in schema.fields.items() if isinstance(spec, RefManyField)),
            filterable=filterable,
        )

    def select(self, requested: Sequence[str] | None = None) -> tuple[str, ...]:
        """Intersect a ``select`` request with the visible fields.

        Unknown or hidden names are dropped; the identifier is always kept.
        """
        if not requested:
            return self.selected
        wanted = [name for name in dict.fromkeys(requested) if name in self.selected and name != ID_FIELD]
        return (ID_FIELD, *wanted)

    def populatable(self, requested: Iterable[str], fields: Sequence[str]) -> tuple[str, ...]:
        """Keep the requested relationship fields that are part of the response."""
        return tuple(name for name in dict.fromkeys(requested) if name in self.relationships and name in fields)

    def sortable(self, sort: Iterable[tuple[str, int]]) -> list[tuple[str, int]]:
        return [(name, direction) for name, direction in sort if name in self.filterable and name not in self.many]

    def criteria(self, filters: Mapping[str, str]) -> dict[str, Any]:
        """Turn query-string filters into equality criteria on visible fields."""
        result: dict[str, Any] = {}
        for name, raw in filters.items():
            scalar_type = self.filterable.get(name)
            if scalar_type is None:
                continue
            try:
                result[name] = cast_scalar(raw, scalar_type)
            except ValueError as exc:
                raise InvalidQuery(f"Invalid value for {name}: {raw!r}") from exc
        return result

    def strip_uneditable(self, body: Mapping[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in body.items() if k not in self.uneditable and k not in RESERVED_FIELDS}
