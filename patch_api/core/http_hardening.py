from __future__ import annotations

import logging
import re
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from patch_api.core.errors import ListingError

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_LOG = logging.getLogger("patch_api.http")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}


def _request_id_from_header(raw: str | None) -> str:
    value = str(raw or "").strip()
    if not value or not _REQUEST_ID_RE.fullmatch(value):
        return uuid4().hex
    return value


def _stamp_response(response: Response, request_id: str) -> None:
    response.headers.update(SECURITY_HEADERS)
    # Tenant data must never be served from a shared cache.
    response.headers["Cache-Control"] = "no-store"
    response.headers[REQUEST_ID_HEADER] = request_id


def _log_access(request: Request, status_code: int, started_at: float) -> None:
    _LOG.info(
        "%s %s status=%s duration_ms=%.2f request_id=%s",
        request.method,
        request.url.path,
        status_code,
        (perf_counter() - started_at) * 1000.0,
        request.state.request_id,
    )


def install_http_hardening(app: FastAPI) -> None:
    @app.middleware("http")
    async def _http_hardening_middleware(request: Request, call_next):
        started_at = perf_counter()
        request.state.request_id = _request_id_from_header(request.headers.get(REQUEST_ID_HEADER))
        response = await call_next(request)
        _stamp_response(response, request.state.request_id)
        _log_access(request, response.status_code, started_at)
        return response


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ListingError)
    async def _listing_error_handler(request: Request, exc: ListingError):
        request_id = getattr(request.state, "request_id", "-")
        if exc.status_code < 500:
            _LOG.warning(
                "%s %s rejected kind=%s detail=%s request_id=%s",
                request.method,
                request.url.path,
                exc.kind.value,
                exc.message,
                request_id,
            )
        else:
            _LOG.error("%s %s failed kind=%s request_id=%s", request.method, request.url.path, exc.kind.value, request_id)
        return JSONResponse(exc.payload(), status_code=exc.status_code)
