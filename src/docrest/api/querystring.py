"""Parsing of the reserved list/show query parameters.

``skip``, ``limit``, ``sort``, ``select`` and ``populate`` are reserved; every
other key is handed back as a filter for the list endpoints.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from docrest.core.policy import ASCENDING, DESCENDING

RESERVED_PARAMS = frozenset({"skip", "limit", "sort", "select", "populate"})

_SPLIT = re.compile(r"[,\s]+")


def split_names(raw: str | None) -> list[str]:
    """Split a comma (or whitespace) separated list, dropping empty entries."""
    if not raw:
        return []
    return [name for name in _SPLIT.split(raw.strip()) if name]


def parse_sort(raw: str | None) -> list[tuple[str, int]]:
    """Parse ``title,-created`` style sort expressions."""
    keys: list[tuple[str, int]] = []
    for name in split_names(raw):
        if name.startswith("-"):
            keys.append((name[1:], DESCENDING))
        else:
            keys.append((name.lstrip("+"), ASCENDING))
    return [(name, direction) for name, direction in keys if name]


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class QueryOptions:
    skip: int = 0
    limit: int | None = None
    sort: list[tuple[str, int]] = field(default_factory=list)
    select: list[str] = field(default_factory=list)
    populate: list[str] = field(default_factory=list)
    filters: dict[str, str] = field(default_factory=dict)


def parse_query(params: Mapping[str, str]) -> QueryOptions:
    """Build :class:`QueryOptions` from query parameters.

    Malformed ``skip``/``limit`` values fall back to their defaults; a
    non-positive ``limit`` means no limit.
    """
    skip = _parse_int(params.get("skip"))
    limit = _parse_int(params.get("limit"))
    return QueryOptions(
        skip=max(skip or 0, 0),
        limit=limit if limit is not None and limit > 0 else None,
        sort=parse_sort(params.get("sort")),
        select=split_names(params.get("select")),
        populate=split_names(params.get("populate")),
        filters={key: value for key, value in params.items() if key not in RESERVED_PARAMS},
    )
