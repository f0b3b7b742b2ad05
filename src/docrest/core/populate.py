from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from docrest.core.policy import FieldPolicy
from docrest.core.ports.store import DocumentStore, Record
from docrest.models import ID_FIELD

logger = logging.getLogger(__name__)


async def populate(
    store: DocumentStore,
    policy: FieldPolicy,
    target_policies: Mapping[str, FieldPolicy],
    records: Sequence[Record],
    fields: Sequence[str],
) -> dict[str, tuple[str, ...]]:
    """Replace reference ids in ``records`` with the referenced records.

    Each referenced collection is queried once per field and only its own
    visible fields are fetched. Array order on the parent is kept; ids that no
    longer resolve are dropped (arrays) or set to ``None`` (single references).
    Returns the nested selection map to hand to :func:`docrest.core.shaping.shape`.
    """
    nested: dict[str, tuple[str, ...]] = {}
    for field in fields:
        target = policy.relationships[field]
        target_policy = target_policies[target]
        many = field in policy.many

        ids: list[str] = []
        for record in records:
            value = record.get(field)
            if many:
                ids.extend(value or [])
            elif value is not None:
                ids.append(value)

        found = await store.collection(target).find(
            {ID_FIELD: {"$in": list(dict.fromkeys(ids))}},
            fields=target_policy.selected,
        )
        by_id = {doc[ID_FIELD]: doc for doc in found}
        logger.debug("populated %s.%s: %d of %d references resolved", policy.collection, field, len(by_id), len(ids))

        for record in records:
            value = record.get(field)
            if many:
                record[field] = [by_id[ref] for ref in value or [] if ref in by_id]
            elif value is not None:
                record[field] = by_id.get(value)
        nested[field] = target_policy.selected
    return nested
