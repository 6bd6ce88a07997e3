from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query

from patch_api.core.errors import UnknownSortField
from patch_api.schemas.listing import SortSpec
from patch_api.services.field_registry import Registry


def _parse_tokens(raw: str, registry: Registry) -> list[SortSpec]:
    specs: list[SortSpec] = []
    seen: set[str] = set()
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        direction = "asc"
        if token.startswith("-"):
            direction = "desc"
            token = token[1:].strip()
        descriptor = registry.get(token)
        if descriptor is None or not descriptor.sortable or descriptor.is_tag:
            raise UnknownSortField(f'Invalid sort field "{token}"')
        if token in seen:
            continue
        seen.add(token)
        specs.append(SortSpec(field=token, dir=direction))
    return specs


def parse_sort(raw: str | None, registry: Registry, default_sort: str = "") -> list[SortSpec]:
    specs = _parse_tokens(raw or "", registry)
    if specs:
        return specs
    return _parse_tokens(default_sort or "", registry)


def with_tie_break(specs: Sequence[SortSpec], registry: Registry) -> list[SortSpec]:
    ordered = list(specs)
    if all(spec.field != registry.id_field for spec in ordered):
        ordered.append(SortSpec(field=registry.id_field, dir="asc"))
    return ordered


def apply_sort(query: Query, registry: Registry, specs: Sequence[SortSpec]) -> Query:
    clauses = []
    for spec in with_tie_break(specs, registry):
        expression = registry[spec.field].expression
        clauses.append(asc(expression) if spec.dir == "asc" else desc(expression))
    return query.order_by(*clauses)
