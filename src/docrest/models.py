from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Discriminator, Field, Tag, model_validator

ID_FIELD = "_id"
VERSION_KEY = "__v"
INTERNAL_FIELDS = frozenset({VERSION_KEY})
RESERVED_FIELDS = frozenset({ID_FIELD, VERSION_KEY})


class ScalarType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"


class ScalarField(BaseModel):
    kind: Literal["scalar"] = "scalar"
    type: ScalarType = ScalarType.STRING
    visible: bool = True
    editable: bool = True
    required: bool = False
    default: Any = None


class RefField(BaseModel):
    """Reference to a single record of another collection."""

    kind: Literal["ref"] = "ref"
    ref: str
    visible: bool = True
    editable: bool = True
    required: bool = False


class RefManyField(BaseModel):
    """Array of references; the element type carries the target collection."""

    kind: Literal["ref_many"] = "ref_many"
    items: RefField
    visible: bool = True
    editable: bool = True
    required: bool = False


def _field_kind(value: Any) -> str:
    # Fields without an explicit kind are scalars.
    if isinstance(value, dict):
        return value.get("kind", "scalar")
    return getattr(value, "kind", "scalar")


FieldSpec = Annotated[
    Annotated[ScalarField, Tag("scalar")] | Annotated[RefField, Tag("ref")] | Annotated[RefManyField, Tag("ref_many")],
    Discriminator(_field_kind),
]


class CollectionSchema(BaseModel):
    name: str
    plural: str | None = None
    fields: dict[str, FieldSpec] = Field(default_factory=dict)
    alternate_key: str | None = None
    autokey_from: str | None = None
    version_field: str | None = None

    @model_validator(mode="after")
    def _check_fields(self) -> CollectionSchema:
        if not self.name.isidentifier():
            raise ValueError(f"Collection name {self.name!r} must be a valid identifier")
        reserved = RESERVED_FIELDS.intersection(self.fields)
        if reserved:
            raise ValueError(f"{self.name}: reserved field names cannot be declared: {sorted(reserved)}")

        if self.alternate_key is not None:
            field = self.fields.get(self.alternate_key)
            if not isinstance(field, ScalarField) or field.type is not ScalarType.STRING:
                raise ValueError(f"{self.name}: alternate key {self.alternate_key!r} must be a string field")

        if self.autokey_from is not None:
            if self.alternate_key is None:
                raise ValueError(f"{self.name}: autokey_from requires an alternate_key")
            if self.autokey_from not in self.fields:
                raise ValueError(f"{self.name}: autokey source {self.autokey_from!r} is not a field")

        if self.version_field is not None:
            field = self.fields.get(self.version_field)
            if not isinstance(field, ScalarField) or field.type is not ScalarType.INTEGER:
                raise ValueError(f"{self.name}: version field {self.version_field!r} must be an integer field")
            if field.editable:
                raise ValueError(f"{self.name}: version field {self.version_field!r} must not be editable")
        return self

    @property
    def singular(self) -> str:
        return self.name.lower()

    @property
    def path_segment(self) -> str:
        return (self.plural or f"{self.name}s").lower()

    @property
    def lookup_field(self) -> str:
        return self.alternate_key or ID_FIELD
