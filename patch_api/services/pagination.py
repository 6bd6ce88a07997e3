from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlencode

from sqlalchemy.orm import Query

from patch_api.core.errors import InvalidPagination
from patch_api.schemas.listing import Links, PageMeta, PageRequest

UNLIMITED = -1
_PAGING_PARAMS = ("offset", "limit")


def _parse_int(name: str, raw: str | None, default: int) -> int:
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        raise InvalidPagination(f'Invalid {name} "{raw}", expected an integer')


def parse_page_request(
    limit_raw: str | None,
    offset_raw: str | None,
    *,
    default_limit: int,
    allow_unlimited: bool,
) -> PageRequest:
    limit = _parse_int("limit", limit_raw, default_limit)
    offset = _parse_int("offset", offset_raw, 0)
    if offset < 0:
        raise InvalidPagination(f"Invalid offset {offset}, must be >= 0")
    if limit < UNLIMITED:
        raise InvalidPagination(f"Invalid limit {limit}, must be >= 0 or -1")
    if limit == UNLIMITED and not allow_unlimited:
        raise InvalidPagination("limit=-1 is not allowed for this endpoint")
    return PageRequest(limit=limit, offset=offset)


def paginate(query: Query, page: PageRequest) -> Query:
    if page.offset:
        query = query.offset(page.offset)
    if page.unlimited:
        return query
    return query.limit(page.limit)


def build_meta(total_items: int, page: PageRequest) -> PageMeta:
    return PageMeta(total_items=int(total_items), limit=page.limit, offset=page.offset)


def _clamp(offset: int, total_items: int) -> int:
    return max(0, min(offset, max(total_items - 1, 0)))


def _last_offset(meta: PageMeta) -> int:
    if meta.limit <= 0 or meta.total_items <= 0:
        return 0
    return ((meta.total_items - 1) // meta.limit) * meta.limit


def _page_url(base_path: str, params: list[tuple[str, str]], offset: int, limit: int) -> str:
    items = [("offset", str(offset)), ("limit", str(limit)), *params]
    return f"{base_path}?{urlencode(items, safe='[],')}"


def build_links(base_path: str, query_items: Iterable[tuple[str, str]], meta: PageMeta) -> Links:
    params = [(key, value) for key, value in query_items if key not in _PAGING_PARAMS]
    last = _last_offset(meta)
    links = Links(
        first=_page_url(base_path, params, 0, meta.limit),
        last=_page_url(base_path, params, _clamp(last, meta.total_items), meta.limit),
    )
    # Unlimited and zero-size pages have no next page to walk to.
    if meta.limit > 0 and meta.offset + meta.limit < meta.total_items:
        links.next = _page_url(base_path, params, _clamp(meta.offset + meta.limit, meta.total_items), meta.limit)
    if meta.offset > 0:
        previous = min(meta.offset - max(meta.limit, 0), last)
        links.previous = _page_url(base_path, params, _clamp(previous, meta.total_items), meta.limit)
    return links
