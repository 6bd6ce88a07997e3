from __future__ import annotations

import csv
import io
import json
import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi.responses import JSONResponse, Response

from patch_api.core.errors import UnsupportedContentType
from patch_api.services.field_registry import Registry

FORMAT_JSON = "application/json"
FORMAT_CSV = "text/csv"
_JSON_FALLBACKS = ("*/*", "application/*")


def negotiate(accept: str | None) -> str:
    text = str(accept or "").strip()
    if FORMAT_JSON in text:
        return FORMAT_JSON
    if FORMAT_CSV in text:
        return FORMAT_CSV
    if not text or any(fallback in text for fallback in _JSON_FALLBACKS):
        return FORMAT_JSON
    raise UnsupportedContentType(f"Invalid content type '{text}', use '{FORMAT_JSON}' or '{FORMAT_CSV}'")


def serialize_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: serialize_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def csv_cell(value: Any) -> str:
    value = serialize_value(value)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def to_csv(registry: Registry, rows: Iterable[Mapping[str, Any]]) -> str:
    columns = registry.column_names()
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({name: csv_cell(row.get(name)) for name in columns})
    return output.getvalue()


def list_items(registry: Registry, item_type: str, rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    id_field = registry.id_field
    return [
        {
            "id": serialize_value(row.get(id_field)),
            "type": item_type,
            "attributes": {key: serialize_value(val) for key, val in row.items() if key != id_field},
        }
        for row in rows
    ]


def render(
    content_type: str,
    status_code: int,
    registry: Registry,
    rows: Sequence[Mapping[str, Any]],
    *,
    envelope: dict[str, Any] | None = None,
) -> Response:
    if content_type == FORMAT_CSV:
        return Response(content=to_csv(registry, rows), status_code=status_code, media_type=FORMAT_CSV)
    payload = envelope if envelope is not None else [serialize_value(dict(row)) for row in rows]
    return JSONResponse(payload, status_code=status_code)
