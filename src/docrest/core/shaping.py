from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from docrest.models import INTERNAL_FIELDS


def to_plain(record: Any) -> dict[str, Any]:
    """Convert a record handle (mapping, pydantic model, or ``to_dict`` object) to a dict."""
    if isinstance(record, Mapping):
        return dict(record)
    if hasattr(record, "model_dump"):
        return dict(record.model_dump())
    if hasattr(record, "to_dict"):
        return dict(record.to_dict())
    raise TypeError(f"Cannot shape record of type {type(record).__name__}")


def _project(value: Any, selected: Sequence[str] | None) -> Any:
    if isinstance(value, list):
        return [_project(item, selected) for item in value]
    if isinstance(value, Mapping) or hasattr(value, "model_dump") or hasattr(value, "to_dict"):
        return shape(value, selected)
    # An unpopulated reference id stays as it is.
    return value


def shape(
    record: Any,
    selected: Sequence[str] | None = None,
    nested: Mapping[str, Sequence[str]] | None = None,
) -> dict[str, Any]:
    """Project ``record`` down to ``selected`` fields for a JSON response.

    Populated values under a key of ``nested`` are projected through that
    collection's own selected set. Internal bookkeeping fields are always dropped.
    """
    plain = to_plain(record)
    if selected is None:
        names = [name for name in plain if name not in INTERNAL_FIELDS]
    else:
        names = [name for name in selected if name in plain and name not in INTERNAL_FIELDS]

    nested = nested or {}
    return {name: _project(plain[name], nested.get(name)) for name in names}
