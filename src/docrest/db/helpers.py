from collections.abc import Iterator, Mapping, Sequence
from typing import Any

from string_utils import slugify

from docrest.core.errors import InvalidPayload, VersionConflict
from docrest.models import (
    ID_FIELD,
    RESERVED_FIELDS,
    VERSION_KEY,
    CollectionSchema,
    RefField,
    RefManyField,
    ScalarField,
    ScalarType,
)


def _coerce_scalar(value: Any, scalar_type: ScalarType) -> Any:
    if isinstance(value, dict | list):
        raise ValueError("expected a scalar value")
    if scalar_type is ScalarType.STRING:
        return str(value)
    if scalar_type is ScalarType.BOOLEAN:
        if isinstance(value, bool):
            return value
        raise ValueError("expected a boolean")
    if isinstance(value, bool):
        raise ValueError(f"expected {scalar_type.value}")
    if scalar_type is ScalarType.INTEGER:
        if isinstance(value, float) and not value.is_integer():
            raise ValueError("expected an integer")
        return int(value)
    return float(value)


def _coerce_ref(value: Any) -> str:
    if isinstance(value, dict | list | bool):
        raise ValueError("expected a reference id")
    return str(value)


def coerce_value(spec: ScalarField | RefField | RefManyField, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(spec, ScalarField):
        return _coerce_scalar(value, spec.type)
    if isinstance(spec, RefField):
        return _coerce_ref(value)
    if not isinstance(value, list):
        raise ValueError("expected a list of reference ids")
    return [_coerce_ref(item) for item in value]


def _is_missing(value: Any) -> bool:
    return value is None or value == "" or value == []


def apply_payload(
    schema: CollectionSchema,
    payload: Mapping[str, Any],
    current: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Validate ``payload`` against ``schema`` and merge it onto ``current``.

    Unknown and reserved keys are ignored. On insert (``current is None``)
    declared defaults fill the gaps. Raises ``InvalidPayload`` listing every
    offending field.
    """
    errors: dict[str, str] = {}
    document: dict[str, Any] = dict(current) if current is not None else {}

    for name, value in payload.items():
        spec = schema.fields.get(name)
        if spec is None or name in RESERVED_FIELDS:
            continue
        try:
            document[name] = coerce_value(spec, value)
        except (TypeError, ValueError) as exc:
            errors[name] = str(exc)

    if current is None:
        for name, spec in schema.fields.items():
            if name in document:
                continue
            if isinstance(spec, ScalarField):
                document[name] = spec.default
            elif isinstance(spec, RefManyField):
                document[name] = []
            else:
                document[name] = None

    for name, spec in schema.fields.items():
        if spec.required and name not in errors and _is_missing(document.get(name)):
            if name == schema.alternate_key and schema.autokey_from is not None:
                continue
            errors[name] = "field is required"

    if errors:
        raise InvalidPayload(f"Validation failed for {schema.name}", errors)
    return document


def autokey_base(schema: CollectionSchema, document: Mapping[str, Any]) -> str | None:
    """Return the slug to derive an empty alternate key from, if the schema wants one."""
    if schema.autokey_from is None or schema.alternate_key is None:
        return None
    if not _is_missing(document.get(schema.alternate_key)):
        return None
    source = document.get(schema.autokey_from)
    if _is_missing(source):
        return None
    return slugify(str(source))


def slug_candidates(base: str) -> Iterator[str]:
    yield base
    suffix = 2
    while True:
        yield f"{base}-{suffix}"
        suffix += 1


def bump_version(schema: CollectionSchema, document: dict[str, Any]) -> None:
    """Advance the internal save counter and mirror it onto the public version field."""
    document[VERSION_KEY] = int(document.get(VERSION_KEY, -1)) + 1
    if schema.version_field is not None:
        document[schema.version_field] = document[VERSION_KEY]


def version_conflict(schema: CollectionSchema, stored: Mapping[str, Any], expected: Any) -> VersionConflict:
    """Describe a save that was based on version ``expected`` of a record now at a later one."""
    key = stored.get(schema.lookup_field) or stored[ID_FIELD]
    return VersionConflict(schema.singular, str(key), int(expected), int(stored[VERSION_KEY]))


def matches(document: Mapping[str, Any], criteria: Mapping[str, Any]) -> bool:
    for name, condition in criteria.items():
        value = document.get(name)
        if isinstance(condition, Mapping) and "$in" in condition:
            options = condition["$in"]
            if isinstance(value, list):
                if not any(item in options for item in value):
                    return False
            elif value not in options:
                return False
        elif isinstance(value, list):
            if condition not in value:
                return False
        elif value != condition:
            return False
    return True


def sort_documents(documents: list[dict[str, Any]], sort: Sequence[tuple[str, int]] | None) -> list[dict[str, Any]]:
    """Stable multi-key sort; ``None`` values order after everything else."""
    ordered = list(documents)
    for name, direction in reversed(list(sort or [])):
        present = [doc for doc in ordered if doc.get(name) is not None]
        absent = [doc for doc in ordered if doc.get(name) is None]
        present.sort(key=lambda doc: doc[name], reverse=direction < 0)
        ordered = present + absent
    return ordered


def project(document: Mapping[str, Any], fields: Sequence[str] | None) -> dict[str, Any]:
    if fields is None:
        return dict(document)
    keep = {ID_FIELD, *fields}
    return {name: value for name, value in document.items() if name in keep}
