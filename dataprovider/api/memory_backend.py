from __future__ import annotations

import copy
import logging
from datetime import timedelta
from threading import Lock
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from dataprovider.core.config import settings
from dataprovider.core.request_tracing import install_request_tracing
from dataprovider.core.security import hash_password, issue_token, verify_password, verify_token
from dataprovider.services.memory_query import apply_list_params, parse_list_params

_LOG = logging.getLogger("dataprovider.backend")

bearer = HTTPBearer(auto_error=False)


class LoginIn(BaseModel):
    email: str
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MemoryStore:
    def __init__(self, seed: dict[str, list[dict[str, Any]]] | None = None):
        self._data: dict[str, list[dict[str, Any]]] = copy.deepcopy(seed or {})
        self._lock = Lock()

    def resources(self) -> list[str]:
        with self._lock:
            return sorted(self._data)

    def rows(self, resource: str) -> list[dict[str, Any]]:
        with self._lock:
            if resource not in self._data:
                raise HTTPException(status_code=404, detail=f'Resource "{resource}" not found')
            return copy.deepcopy(self._data[resource])

    def _find_index(self, resource: str, record_id: str) -> int:
        rows = self._data.get(resource)
        if rows is None:
            raise HTTPException(status_code=404, detail=f'Resource "{resource}" not found')
        for index, row in enumerate(rows):
            if str(row.get("id")) == str(record_id):
                return index
        raise HTTPException(status_code=404, detail=f'Record "{record_id}" not found in "{resource}"')

    def get(self, resource: str, record_id: str) -> dict[str, Any]:
        with self._lock:
            index = self._find_index(resource, record_id)
            return copy.deepcopy(self._data[resource][index])

    def insert(self, resource: str, payload: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            rows = self._data.setdefault(resource, [])
            row = dict(payload)
            if row.get("id") is None:
                int_ids = [r["id"] for r in rows if type(r.get("id")) is int]
                row["id"] = max(int_ids, default=0) + 1
            elif any(str(r.get("id")) == str(row["id"]) for r in rows):
                raise HTTPException(status_code=409, detail=f'Record "{row["id"]}" already exists in "{resource}"')
            rows.append(row)
            return copy.deepcopy(row)

    def patch(self, resource: str, record_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            index = self._find_index(resource, record_id)
            row = self._data[resource][index]
            row.update({k: v for k, v in payload.items() if k != "id"})
            return copy.deepcopy(row)

    def replace(self, resource: str, record_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            index = self._find_index(resource, record_id)
            row = {**payload, "id": self._data[resource][index]["id"]}
            self._data[resource][index] = row
            return copy.deepcopy(row)

    def delete(self, resource: str, record_id: str) -> dict[str, Any]:
        with self._lock:
            index = self._find_index(resource, record_id)
            return self._data[resource].pop(index)


def _build_router(store: MemoryStore, *, require_auth: bool) -> APIRouter:
    router = APIRouter()
    password_hashes = {
        email: hash_password(password) for email, password in settings.memory_backend_users_map.items()
    }

    def _current_user(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> dict | None:
        if not require_auth:
            return None
        if not creds:
            raise HTTPException(status_code=401, detail="Missing bearer token")
        try:
            return verify_token(creds.credentials, settings.MEMORY_BACKEND_JWT_SECRET)
        except Exception:
            raise HTTPException(status_code=401, detail="Invalid bearer token")

    @router.get("/health")
    def health():
        return {"status": "ok", "resources": store.resources()}

    @router.post("/auth/login", response_model=TokenOut)
    def login(payload: LoginIn):
        email = str(payload.email or "").strip().lower()
        password_hash = password_hashes.get(email)
        if not password_hash or not verify_password(payload.password, password_hash):
            raise HTTPException(status_code=401, detail="Invalid email or password")
        token = issue_token(
            {"sub": email, "email": email, "role": "ADMIN"},
            settings.MEMORY_BACKEND_JWT_SECRET,
            timedelta(minutes=settings.MEMORY_BACKEND_JWT_TTL_MINUTES),
        )
        return TokenOut(access_token=token)

    @router.get("/{resource}")
    def list_rows(resource: str, request: Request, response: Response, user: dict | None = Depends(_current_user)):
        params = parse_list_params(request.query_params.multi_items())
        rows, total = apply_list_params(store.rows(resource), params)
        response.headers[settings.TOTAL_COUNT_HEADER] = str(total)
        return rows

    @router.post("/{resource}", status_code=201)
    def create_row(resource: str, payload: dict[str, Any], user: dict | None = Depends(_current_user)):
        return store.insert(resource, payload)

    @router.get("/{resource}/{record_id}")
    def get_row(resource: str, record_id: str, user: dict | None = Depends(_current_user)):
        return store.get(resource, record_id)

    @router.patch("/{resource}/{record_id}")
    def update_row(
        resource: str,
        record_id: str,
        payload: dict[str, Any],
        user: dict | None = Depends(_current_user),
    ):
        return store.patch(resource, record_id, payload)

    @router.put("/{resource}/{record_id}")
    def replace_row(
        resource: str,
        record_id: str,
        payload: dict[str, Any],
        user: dict | None = Depends(_current_user),
    ):
        return store.replace(resource, record_id, payload)

    @router.delete("/{resource}/{record_id}")
    def delete_row(resource: str, record_id: str, user: dict | None = Depends(_current_user)):
        return store.delete(resource, record_id)

    return router


def create_memory_backend(
    seed: dict[str, list[dict[str, Any]]] | None = None,
    *,
    require_auth: bool = False,
) -> FastAPI:
    app = FastAPI(title=f"{settings.APP_NAME}-memory-backend", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[settings.TOTAL_COUNT_HEADER],
    )
    install_request_tracing(app)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse({"message": detail, "detail": detail}, status_code=exc.status_code, headers=exc.headers)

    app.state.store = MemoryStore(seed)
    app.include_router(_build_router(app.state.store, require_auth=require_auth))
    _LOG.info("memory_backend_ready resources=%s require_auth=%s", app.state.store.resources(), require_auth)
    return app
