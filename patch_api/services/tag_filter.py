from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import exists, select
from sqlalchemy.orm import Query, Session

from patch_api.core.errors import InvalidTagFormat
from patch_api.models.inventory_tag import InventoryTag
from patch_api.schemas.listing import TagPredicate
from patch_api.services.filter_parser import remove_invalid_chars

TAG_LOOKUP_CHUNK = 1000


def parse_tag(raw: str) -> TagPredicate:
    token = remove_invalid_chars(raw).strip()
    path, sep, value = token.partition("=")
    namespace, slash, key = path.partition("/")
    if not slash or not namespace.strip() or not key.strip():
        raise InvalidTagFormat(f'Invalid tag "{raw}", expected "namespace/key=value" or "namespace/key"')
    return TagPredicate(namespace=namespace.strip(), key=key.strip(), value=value if sep else None)


def parse_tags(raw_tags: Iterable[str]) -> list[TagPredicate]:
    predicates: list[TagPredicate] = []
    for raw in raw_tags:
        predicate = parse_tag(raw)
        if predicate not in predicates:
            predicates.append(predicate)
    return predicates


def tag_clause(predicate: TagPredicate, join_key: Any):
    conditions = [
        InventoryTag.inventory_id == join_key,
        InventoryTag.namespace == predicate.namespace,
        InventoryTag.key == predicate.key,
    ]
    if predicate.value is not None:
        conditions.append(InventoryTag.value == predicate.value)
    return exists().where(*conditions)


def apply_tag_filter(query: Query, predicates: Sequence[TagPredicate], join_key: Any) -> Query:
    # One semi-join per predicate: every tag has to be present on the same entity.
    for predicate in predicates:
        query = query.filter(tag_clause(predicate, join_key))
    return query


def load_tags(db: Session, inventory_ids: Iterable[Any]) -> dict[Any, list[dict[str, Any]]]:
    ids = list(dict.fromkeys(i for i in inventory_ids if i is not None))
    tags: dict[Any, list[dict[str, Any]]] = defaultdict(list)
    for start in range(0, len(ids), TAG_LOOKUP_CHUNK):
        rows = db.execute(
            select(InventoryTag.inventory_id, InventoryTag.namespace, InventoryTag.key, InventoryTag.value)
            .where(InventoryTag.inventory_id.in_(ids[start : start + TAG_LOOKUP_CHUNK]))
            .order_by(InventoryTag.inventory_id, InventoryTag.namespace, InventoryTag.key, InventoryTag.id)
        )
        for inventory_id, namespace, key, value in rows:
            tags[inventory_id].append({"namespace": namespace, "key": key, "value": value})
    return tags
