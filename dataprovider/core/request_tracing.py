from __future__ import annotations

import logging
import re
from time import perf_counter
from uuid import uuid4

import httpx
from fastapi import FastAPI, Request

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_STARTED_AT_KEY = "dataprovider.started_at"
_LOG = logging.getLogger("dataprovider.http")
_BACKEND_LOG = logging.getLogger("dataprovider.backend")


def request_id_from_header(raw: str | None) -> str:
    value = str(raw or "").strip()
    if not value:
        return uuid4().hex
    if not _REQUEST_ID_RE.fullmatch(value):
        return uuid4().hex
    return value


async def _on_request(request: httpx.Request) -> None:
    request.headers[REQUEST_ID_HEADER] = request_id_from_header(request.headers.get(REQUEST_ID_HEADER))
    request.extensions = {**request.extensions, _STARTED_AT_KEY: perf_counter()}


async def _on_response(response: httpx.Response) -> None:
    request = response.request
    started_at = request.extensions.get(_STARTED_AT_KEY)
    duration_ms = (perf_counter() - started_at) * 1000.0 if started_at is not None else 0.0
    _LOG.info(
        "%s %s status=%s duration_ms=%.2f request_id=%s",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        request.headers.get(REQUEST_ID_HEADER),
    )


def client_event_hooks() -> dict[str, list]:
    return {"request": [_on_request], "response": [_on_response]}


def install_request_tracing(app: FastAPI) -> None:
    @app.middleware("http")
    async def _request_tracing_middleware(request: Request, call_next):
        request_id = request_id_from_header(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started_at = perf_counter()

        response = await call_next(request)

        response.headers["Cache-Control"] = "no-store"
        response.headers[REQUEST_ID_HEADER] = request_id

        duration_ms = (perf_counter() - started_at) * 1000.0
        _BACKEND_LOG.info(
            "%s %s status=%s duration_ms=%.2f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response
