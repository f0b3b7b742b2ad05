from __future__ import annotations

from docrest.core.errors import SchemaError
from docrest.models import CollectionSchema, RefField, RefManyField


def is_relationship(schema: CollectionSchema, field_name: str) -> bool:
    return isinstance(schema.fields.get(field_name), RefField | RefManyField)


def is_many(schema: CollectionSchema, field_name: str) -> bool:
    return isinstance(schema.fields.get(field_name), RefManyField)


def target_collection(schema: CollectionSchema, field_name: str) -> str:
    """Return the name of the collection referenced by ``field_name``.

    Raises ``SchemaError`` when the field is missing or is not a reference.
    """
    field = schema.fields.get(field_name)
    if isinstance(field, RefField):
        return field.ref
    if isinstance(field, RefManyField):
        return field.items.ref
    raise SchemaError(f"{schema.name}.{field_name} is not a relationship field")


def relationship_fields(schema: CollectionSchema) -> dict[str, str]:
    """Map every relationship field of ``schema`` to its target collection."""
    return {name: target_collection(schema, name) for name in schema.fields if is_relationship(schema, name)}
