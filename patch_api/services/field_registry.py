from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, Integer, Numeric

KIND_TEXT = "text"
KIND_NUMBER = "number"
KIND_BOOLEAN = "boolean"
KIND_DATETIME = "datetime"
KIND_DATE = "date"
KIND_UUID = "uuid"
KIND_TAGS = "tags"
# JSON sub-document matched on presence only (nil / not_nil).
KIND_PRESENCE = "presence"
# JSON array of strings, rendered as JSON text; matches when it contains a value.
KIND_JSON_ARRAY = "json_array"


class RegistryError(ValueError):
    pass


@dataclass(frozen=True)
class FieldDescriptor:
    api_name: str
    expression: Any = None
    filterable: bool = True
    sortable: bool = True
    is_tag: bool = False
    exported: bool = True
    kind: str | None = None
    default: Any = None


def field(api_name: str, expression: Any = None, **options: Any) -> FieldDescriptor:
    return FieldDescriptor(api_name=api_name, expression=expression, **options)


def tag_field(api_name: str = "tags") -> FieldDescriptor:
    return FieldDescriptor(api_name=api_name, filterable=False, sortable=False, is_tag=True, kind=KIND_TAGS)


def filter_only(api_name: str, expression: Any, **options: Any) -> FieldDescriptor:
    return FieldDescriptor(api_name=api_name, expression=expression, sortable=False, exported=False, **options)


def presence_filter(api_name: str, expression: Any) -> FieldDescriptor:
    return filter_only(api_name, expression, kind=KIND_PRESENCE)


def array_filter(api_name: str, expression: Any) -> FieldDescriptor:
    return filter_only(api_name, expression, kind=KIND_JSON_ARRAY)


def _expression_kind(expression: Any) -> str:
    col_type = getattr(expression, "type", None)
    if isinstance(col_type, Boolean):
        return KIND_BOOLEAN
    if isinstance(col_type, (Integer, Numeric, Float)):
        return KIND_NUMBER
    if isinstance(col_type, DateTime):
        return KIND_DATETIME
    if isinstance(col_type, Date):
        return KIND_DATE
    if isinstance(col_type, JSON):
        raise RegistryError("JSON expressions must be narrowed with as_string()/as_boolean()/...")
    try:
        python_type = col_type.python_type if col_type is not None else None
    except NotImplementedError:
        python_type = None
    if python_type is uuid.UUID:
        return KIND_UUID
    return KIND_TEXT


class Registry(Mapping[str, FieldDescriptor]):
    def __init__(self, entity: str, fields: Mapping[str, FieldDescriptor], id_field: str):
        self.entity = entity
        self.id_field = id_field
        self._fields = MappingProxyType(dict(fields))

    def __getitem__(self, api_name: str) -> FieldDescriptor:
        return self._fields[api_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"Registry({self.entity!r}, fields={list(self._fields)!r})"

    @property
    def id_descriptor(self) -> FieldDescriptor:
        return self._fields[self.id_field]

    def exported_fields(self) -> list[FieldDescriptor]:
        return [f for f in self._fields.values() if f.exported]

    def column_names(self) -> list[str]:
        return [f.api_name for f in self.exported_fields()]

    def tag_fields(self) -> list[FieldDescriptor]:
        return [f for f in self._fields.values() if f.is_tag]

    def select(self) -> list[Any]:
        return [f.expression.label(f.api_name) for f in self.exported_fields() if not f.is_tag]


def build_registry(entity: str, fields: Iterable[FieldDescriptor], *, id_field: str = "id") -> Registry:
    resolved: dict[str, FieldDescriptor] = {}
    for descriptor in fields:
        name = str(descriptor.api_name or "").strip()
        if not name or name != descriptor.api_name:
            raise RegistryError(f'{entity}: invalid field name "{descriptor.api_name}"')
        if name in resolved:
            raise RegistryError(f'{entity}: duplicate field "{name}"')
        if descriptor.is_tag:
            if descriptor.filterable or descriptor.sortable:
                raise RegistryError(f'{entity}: tag field "{name}" cannot be filtered or sorted')
            resolved[name] = descriptor
            continue
        if descriptor.expression is None:
            raise RegistryError(f'{entity}: field "{name}" has no expression')
        if descriptor.kind is None:
            descriptor = replace(descriptor, kind=_expression_kind(descriptor.expression))
        resolved[name] = descriptor

    if id_field not in resolved:
        raise RegistryError(f'{entity}: id field "{id_field}" is not registered')
    id_descriptor = resolved[id_field]
    if id_descriptor.is_tag or not id_descriptor.sortable:
        raise RegistryError(f'{entity}: id field "{id_field}" must be sortable')
    return Registry(entity, resolved, id_field)
