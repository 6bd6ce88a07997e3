from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session
from starlette.requests import Request
from starlette.responses import Response

from patch_api.core.config import settings
from patch_api.core.errors import ListingError, QueryExecutionFailure
from patch_api.schemas.listing import FilterSpec, Links, PageMeta, PageRequest, SortSpec, TagPredicate
from patch_api.services.field_registry import KIND_TEXT, Registry, RegistryError
from patch_api.services.filter_parser import (
    escape_like,
    filter_clause,
    parse_filters,
    remove_invalid_chars,
    validate_filter_spec,
)
from patch_api.services.pagination import build_links, build_meta, paginate, parse_page_request
from patch_api.services.rendering import list_items, render
from patch_api.services.sort_parser import apply_sort, parse_sort
from patch_api.services.tag_filter import load_tags, parse_tags, tag_clause

_LOG = logging.getLogger("patch_api.listing")
T = TypeVar("T")


@dataclass(frozen=True)
class ListOptions:
    registry: Registry
    item_type: str
    default_filters: Mapping[str, FilterSpec] = field(default_factory=dict)
    default_sort: str = ""
    search_field: str | None = None
    tag_join_key: Any = None
    allow_unlimited: bool = False

    def __post_init__(self):
        registry = self.registry
        object.__setattr__(self, "default_filters", MappingProxyType(dict(self.default_filters)))
        for name, spec in self.default_filters.items():
            if name not in registry or spec.field != name:
                raise RegistryError(f'{registry.entity}: invalid default filter "{name}"')
            try:
                validate_filter_spec(registry[name], spec)
            except ListingError as exc:
                raise RegistryError(f"{registry.entity}: {exc.message}") from exc
        try:
            parse_sort(self.default_sort, registry)
        except ListingError as exc:
            raise RegistryError(f"{registry.entity}: invalid default sort: {exc.message}") from exc
        if self.search_field is not None:
            descriptor = registry.get(self.search_field)
            if descriptor is None or descriptor.expression is None or descriptor.kind != KIND_TEXT:
                raise RegistryError(f'{registry.entity}: search field "{self.search_field}" must be a text field')
        if registry.tag_fields() and self.tag_join_key is None:
            raise RegistryError(f"{registry.entity}: tag fields require a tag join key")


@dataclass(frozen=True)
class ListRequest:
    filters: tuple[FilterSpec, ...]
    sort: tuple[SortSpec, ...]
    tags: tuple[TagPredicate, ...]
    search: str | None
    page: PageRequest | None
    query_items: tuple[tuple[str, str], ...]


@dataclass
class ListResult:
    rows: list[dict[str, Any]]
    meta: PageMeta
    links: Links


def _last(items: Sequence[tuple[str, str]], key: str) -> str | None:
    values = [value for name, value in items if name == key]
    return values[-1] if values else None


def parse_list_request(request: Request, opts: ListOptions, *, export: bool = False) -> ListRequest:
    items = tuple((key, remove_invalid_chars(value)) for key, value in request.query_params.multi_items())
    filters = parse_filters(items, opts.registry, opts.default_filters)
    sort = parse_sort(_last(items, "sort"), opts.registry, opts.default_sort)
    # Tag syntax is checked everywhere; only entities with a join key are narrowed by it.
    tags = parse_tags(value for key, value in items if key == "tags")
    search = (_last(items, "search") or "").strip() or None
    page = None
    if not export:
        page = parse_page_request(
            _last(items, "limit"),
            _last(items, "offset"),
            default_limit=settings.DEFAULT_PAGE_LIMIT,
            allow_unlimited=opts.allow_unlimited and settings.ALLOW_UNLIMITED_LIST,
        )
    return ListRequest(
        filters=tuple(filters),
        sort=tuple(sort),
        tags=tuple(tags),
        search=search,
        page=page,
        query_items=items,
    )


def search_clause(opts: ListOptions, term: str):
    expression = opts.registry[opts.search_field].expression
    return expression.ilike(f"%{escape_like(term)}%", escape="\\")


def list_predicates(opts: ListOptions, req: ListRequest) -> list[Any]:
    predicates: list[Any] = []
    if req.search and opts.search_field:
        predicates.append(search_clause(opts, req.search))
    if opts.tag_join_key is not None:
        predicates.extend(tag_clause(predicate, opts.tag_join_key) for predicate in req.tags)
    predicates.extend(filter_clause(opts.registry[spec.field], spec) for spec in req.filters)
    return predicates


def apply_predicates(query: Query, predicates: Sequence[Any]) -> Query:
    if not predicates:
        return query
    return query.filter(*predicates)


def run_query(entity: str, stage: str, operation: Callable[[], T]) -> T:
    try:
        return operation()
    except SQLAlchemyError:
        _LOG.exception("query failed entity=%s stage=%s", entity, stage)
        raise QueryExecutionFailure("Database error")


def row_values(db: Session, opts: ListOptions, rows: Sequence[Any]) -> list[dict[str, Any]]:
    registry = opts.registry
    tag_fields = registry.tag_fields()
    tags: Mapping[Any, list[dict[str, Any]]] = {}
    if tag_fields:
        ids = [row._mapping[registry.id_field] for row in rows]
        tags = run_query(registry.entity, "tags", lambda: load_tags(db, ids))
    result: list[dict[str, Any]] = []
    for row in rows:
        mapping = row._mapping
        values: dict[str, Any] = {}
        for descriptor in registry.exported_fields():
            if descriptor.is_tag:
                values[descriptor.api_name] = list(tags.get(mapping[registry.id_field], []))
                continue
            value = mapping[descriptor.api_name]
            values[descriptor.api_name] = descriptor.default if value is None else value
        result.append(values)
    return result


def list_common(
    db: Session,
    base_query: Query,
    request: Request,
    opts: ListOptions,
    base_path: str | None = None,
    req: ListRequest | None = None,
) -> ListResult:
    req = req or parse_list_request(request, opts)
    _LOG.debug(
        "list entity=%s filters=%s sort=%s tags=%s page=%s",
        opts.registry.entity,
        len(req.filters),
        [f"{s.dir}:{s.field}" for s in req.sort],
        len(req.tags),
        req.page,
    )
    query = apply_predicates(base_query, list_predicates(opts, req))
    total = run_query(opts.registry.entity, "count", query.count)
    query = paginate(apply_sort(query, opts.registry, req.sort), req.page)
    rows = run_query(opts.registry.entity, "fetch", query.all)
    meta = build_meta(total, req.page)
    return ListResult(
        rows=row_values(db, opts, rows),
        meta=meta,
        links=build_links(base_path or request.url.path, req.query_items, meta),
    )


def export_common(
    db: Session,
    base_query: Query,
    request: Request,
    opts: ListOptions,
    req: ListRequest | None = None,
) -> list[dict[str, Any]]:
    req = req or parse_list_request(request, opts, export=True)
    query = apply_predicates(base_query, list_predicates(opts, req))
    query = apply_sort(query, opts.registry, req.sort)
    rows = run_query(opts.registry.entity, "export", query.all)
    return row_values(db, opts, rows)


def render_list(content_type: str, opts: ListOptions, result: ListResult) -> Response:
    envelope = {
        "data": list_items(opts.registry, opts.item_type, result.rows),
        "meta": result.meta.model_dump(),
        "links": result.links.model_dump(),
    }
    return render(content_type, 200, opts.registry, result.rows, envelope=envelope)


def render_export(content_type: str, opts: ListOptions, rows: Sequence[Mapping[str, Any]]) -> Response:
    return render(content_type, 200, opts.registry, rows)
