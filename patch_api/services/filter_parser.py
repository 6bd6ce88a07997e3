from __future__ import annotations

import json
import re
import uuid
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import and_, not_, or_
from sqlalchemy.orm import Query

from patch_api.core.errors import FieldNotFilterable, InvalidFilterValue, InvalidOperator, UnknownFilterField
from patch_api.schemas.listing import FilterOperator, FilterSpec
from patch_api.services.field_registry import (
    KIND_BOOLEAN,
    KIND_DATE,
    KIND_DATETIME,
    KIND_JSON_ARRAY,
    KIND_NUMBER,
    KIND_PRESENCE,
    KIND_TEXT,
    KIND_UUID,
    FieldDescriptor,
    Registry,
)

_FILTER_KEY_RE = re.compile(r"^filter((?:\[[^\[\]]*\])+)$")
_SEGMENT_RE = re.compile(r"\[([^\[\]]*)\]")

_ORDERED_OPS = frozenset(
    {
        FilterOperator.EQ,
        FilterOperator.NE,
        FilterOperator.GT,
        FilterOperator.GE,
        FilterOperator.LT,
        FilterOperator.LE,
        FilterOperator.IN,
    }
)
ALLOWED_OPERATORS: dict[str, frozenset[FilterOperator]] = {
    KIND_TEXT: frozenset({FilterOperator.EQ, FilterOperator.NE, FilterOperator.LIKE, FilterOperator.IN}),
    KIND_NUMBER: _ORDERED_OPS,
    KIND_DATETIME: _ORDERED_OPS,
    KIND_DATE: _ORDERED_OPS,
    KIND_BOOLEAN: frozenset({FilterOperator.EQ, FilterOperator.NE, FilterOperator.IN}),
    KIND_UUID: frozenset({FilterOperator.EQ, FilterOperator.NE, FilterOperator.IN}),
    KIND_PRESENCE: frozenset({FilterOperator.EQ, FilterOperator.NE}),
    KIND_JSON_ARRAY: frozenset({FilterOperator.EQ, FilterOperator.IN}),
}
_EQUALITY_BUCKET = "eq"
_OPERATOR_NAMES = frozenset(op.value for op in FilterOperator)
_PRESENCE_VALUES = {"not_nil": True, "nil": False}


def remove_invalid_chars(value: str) -> str:
    # PostgreSQL rejects NUL bytes in parameter values.
    return str(value).replace("\x00", "")


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _bad_filter_value(field_name: str, kind: str, raw: Any) -> InvalidFilterValue:
    return InvalidFilterValue(f'Invalid filter value "{raw}" for field "{field_name}" ({kind})')


def _coerce_bool_filter_value(field_name: str, value: str) -> bool:
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes", "y"}:
        return True
    if text in {"0", "false", "no", "n"}:
        return False
    raise _bad_filter_value(field_name, "boolean", value)


def _coerce_number_filter_value(field_name: str, value: str, python_type):
    text = str(value).strip()
    if not text:
        raise _bad_filter_value(field_name, "number", value)
    normalized = text.replace(",", ".")
    try:
        if python_type is int:
            return int(normalized)
        if python_type is Decimal:
            return Decimal(normalized)
        return float(normalized)
    except (ValueError, TypeError, InvalidOperation):
        raise _bad_filter_value(field_name, "number", value)


def _coerce_date_filter_value(field_name: str, value: str) -> date:
    text = str(value or "").strip()
    if not text:
        raise _bad_filter_value(field_name, "date", value)
    try:
        # Accept either YYYY-MM-DD or full ISO datetime and take its date part.
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        raise _bad_filter_value(field_name, "date", value)


def _coerce_datetime_filter_value(field_name: str, value: str) -> datetime:
    text = str(value or "").strip()
    if not text:
        raise _bad_filter_value(field_name, "datetime", value)
    try:
        if _is_date_only_literal(text):
            # Date-only filter value for timestamp fields -> start of the day.
            parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
        else:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise _bad_filter_value(field_name, "datetime", value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_presence_filter_value(field_name: str, value: str) -> bool:
    text = str(value or "").strip().lower()
    if text not in _PRESENCE_VALUES:
        raise InvalidFilterValue(f'Invalid filter value "{value}" for field "{field_name}", expected "not_nil" or "nil"')
    return _PRESENCE_VALUES[text]


def _expression_python_type(descriptor: FieldDescriptor):
    try:
        return descriptor.expression.type.python_type
    except (AttributeError, NotImplementedError):
        return None


def coerce_filter_value(descriptor: FieldDescriptor, value: str) -> Any:
    name = descriptor.api_name
    if descriptor.kind == KIND_UUID:
        try:
            return uuid.UUID(str(value or "").strip())
        except ValueError:
            raise _bad_filter_value(name, "uuid", value)
    if descriptor.kind == KIND_BOOLEAN:
        return _coerce_bool_filter_value(name, value)
    if descriptor.kind == KIND_NUMBER:
        return _coerce_number_filter_value(name, value, _expression_python_type(descriptor))
    if descriptor.kind == KIND_DATE:
        return _coerce_date_filter_value(name, value)
    if descriptor.kind == KIND_DATETIME:
        return _coerce_datetime_filter_value(name, value)
    if descriptor.kind == KIND_PRESENCE:
        return _coerce_presence_filter_value(name, value)
    return value


def _is_date_only_literal(text: str) -> bool:
    if not text or "T" in text or " " in text:
        return False
    try:
        date.fromisoformat(text)
        return True
    except ValueError:
        return False


def _filter_segments(raw_key: str) -> list[str] | None:
    match = _FILTER_KEY_RE.match(raw_key)
    if match is None:
        return None
    return _SEGMENT_RE.findall(match.group(1))


def _field_path(segments: list[str]) -> str:
    if len(segments) > 1 and segments[-1].strip().lower() in _OPERATOR_NAMES:
        segments = segments[:-1]
    return ".".join(segments)


def _resolve_field(segments: list[str], registry: Registry) -> tuple[FieldDescriptor, FilterOperator | None]:
    path = ".".join(segments)
    if any(not segment.strip() for segment in segments):
        raise UnknownFilterField(f'Unknown filter field "{path}"')
    if path in registry:
        return registry[path], None
    if len(segments) > 1:
        field_name = ".".join(segments[:-1])
        if field_name in registry:
            raw_op = segments[-1].strip().lower()
            try:
                return registry[field_name], FilterOperator(raw_op)
            except ValueError:
                raise InvalidOperator(f'Unknown filter operator "{segments[-1]}" for field "{field_name}"')
    raise UnknownFilterField(f'Unknown filter field "{_field_path(segments)}"')


def validate_filter_spec(descriptor: FieldDescriptor, spec: FilterSpec) -> FilterSpec:
    if descriptor.is_tag or not descriptor.filterable:
        raise FieldNotFilterable(f'Field "{descriptor.api_name}" cannot be used as a filter')
    allowed = ALLOWED_OPERATORS.get(descriptor.kind or KIND_TEXT, frozenset())
    if spec.op not in allowed:
        raise InvalidOperator(f'Operator "{spec.op.value}" is not allowed for field "{descriptor.api_name}"')
    if not spec.values or any(not value.strip() for value in spec.values):
        raise InvalidFilterValue(f'Filter "{descriptor.api_name}" requires a non-empty value')
    if spec.op != FilterOperator.IN and len(spec.values) != 1:
        raise InvalidFilterValue(f'Operator "{spec.op.value}" takes exactly one value for field "{descriptor.api_name}"')
    for value in spec.values:
        coerce_filter_value(descriptor, value)
    return spec


def _split_in_values(value: str) -> list[str]:
    return [item.strip() for item in value.split(",")]


def parse_filters(
    params: Iterable[tuple[str, str]],
    registry: Registry,
    default_filters: Mapping[str, FilterSpec] | None = None,
) -> list[FilterSpec]:
    buckets: dict[tuple[str, str], list[str]] = {}
    explicit_in: set[str] = set()
    for raw_key, raw_value in params:
        segments = _filter_segments(raw_key)
        if segments is None:
            continue
        descriptor, op = _resolve_field(segments, registry)
        value = remove_invalid_chars(raw_value)
        if op in (None, FilterOperator.EQ, FilterOperator.IN):
            values = _split_in_values(value) if op == FilterOperator.IN else [value]
            if op == FilterOperator.IN:
                explicit_in.add(descriptor.api_name)
            buckets.setdefault((descriptor.api_name, _EQUALITY_BUCKET), []).extend(values)
        else:
            buckets.setdefault((descriptor.api_name, op.value), []).append(value)

    specs: list[FilterSpec] = []
    for (field_name, bucket), raw_values in buckets.items():
        descriptor = registry[field_name]
        values = tuple(dict.fromkeys(raw_values))
        if bucket == _EQUALITY_BUCKET:
            if len(values) == 1 and field_name not in explicit_in:
                candidates = [FilterSpec(field=field_name, op=FilterOperator.EQ, values=values)]
            else:
                candidates = [FilterSpec(field=field_name, op=FilterOperator.IN, values=values)]
        else:
            # Repeated non-equality operators all have to hold.
            candidates = [FilterSpec(field=field_name, op=FilterOperator(bucket), values=(v,)) for v in values]
        for spec in candidates:
            specs.append(validate_filter_spec(descriptor, spec))

    explicit_fields = {field_name for field_name, _ in buckets}
    for field_name, spec in (default_filters or {}).items():
        if field_name not in explicit_fields:
            specs.append(spec)
    return specs


def _array_contains(expression, value: str):
    # Element match on the serialized array: the quoted JSON string must appear in it.
    needle = escape_like(json.dumps(value, ensure_ascii=False))
    return expression.like(f"%{needle}%", escape="\\")


def _day_range(expression, day_start: datetime):
    return and_(expression >= day_start, expression < day_start + timedelta(days=1))


def _match_clause(descriptor: FieldDescriptor, raw: str, value: Any):
    expression = descriptor.expression
    if descriptor.kind == KIND_DATETIME and _is_date_only_literal(raw.strip()):
        return _day_range(expression, value)
    return expression == value


def filter_clause(descriptor: FieldDescriptor, spec: FilterSpec):
    expression = descriptor.expression
    raw_values = list(spec.values)
    values = [coerce_filter_value(descriptor, raw) for raw in raw_values]
    if descriptor.kind == KIND_PRESENCE:
        present = values[0] if spec.op == FilterOperator.EQ else not values[0]
        return expression.isnot(None) if present else expression.is_(None)
    if descriptor.kind == KIND_JSON_ARRAY:
        return or_(*[_array_contains(expression, value) for value in values])
    if spec.op == FilterOperator.EQ:
        return _match_clause(descriptor, raw_values[0], values[0])
    if spec.op == FilterOperator.NE:
        return not_(_match_clause(descriptor, raw_values[0], values[0]))
    if spec.op == FilterOperator.IN:
        if descriptor.kind == KIND_DATETIME:
            return or_(*[_match_clause(descriptor, raw, value) for raw, value in zip(raw_values, values)])
        return expression.in_(values)
    if spec.op == FilterOperator.LIKE:
        return expression.ilike(f"%{escape_like(values[0])}%", escape="\\")
    if spec.op == FilterOperator.GT:
        return expression > values[0]
    if spec.op == FilterOperator.GE:
        return expression >= values[0]
    if spec.op == FilterOperator.LT:
        return expression < values[0]
    if spec.op == FilterOperator.LE:
        return expression <= values[0]
    raise InvalidOperator(f'Operator "{spec.op.value}" is not supported')


def apply_filters(query: Query, registry: Registry, specs: Iterable[FilterSpec]) -> Query:
    for spec in specs:
        query = query.filter(filter_clause(registry[spec.field], spec))
    return query
