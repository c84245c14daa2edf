from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generator

import httpx
from jose import JWTError

from dataprovider.core.config import settings
from dataprovider.core.security import token_expired, unverified_claims
from dataprovider.services.errors import DataIntegrityError, HttpError, normalize_error, raise_for_response

_LOG = logging.getLogger("dataprovider.auth")

LOGOUT_STATUS_CODES = {401, 403}


@dataclass
class AuthResult:
    success: bool
    redirect_to: str | None = None
    error: HttpError | None = None
    logout: bool = False
    authenticated: bool = False


class AuthProvider(ABC):
    """Hook contract an application uses to log users in and out."""

    @abstractmethod
    async def login(self, credentials: dict[str, Any]) -> AuthResult:
        ...

    @abstractmethod
    async def logout(self) -> AuthResult:
        ...

    @abstractmethod
    async def check(self) -> AuthResult:
        ...

    @abstractmethod
    async def on_error(self, error: Exception) -> AuthResult:
        ...

    @abstractmethod
    async def get_identity(self) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def get_permissions(self) -> Any:
        ...


class _BearerAuth(httpx.Auth):
    def __init__(self, provider: "BearerTokenAuthProvider"):
        self._provider = provider

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._provider.token
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


class BearerTokenAuthProvider(AuthProvider):
    def __init__(
        self,
        api_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        login_path: str | None = None,
        token_field: str | None = None,
        login_redirect: str = "/login",
        home_redirect: str = "/",
    ):
        self._api_url = str(api_url or settings.API_URL).strip().rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
        self._owns_client = client is None
        self._login_path = str(login_path or settings.AUTH_LOGIN_PATH).strip().strip("/")
        self._token_field = str(token_field or settings.AUTH_TOKEN_FIELD).strip()
        self._login_redirect = login_redirect
        self._home_redirect = home_redirect
        self.token: str | None = None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def httpx_auth(self) -> httpx.Auth:
        return _BearerAuth(self)

    def _claims(self) -> dict[str, Any] | None:
        if not self.token:
            return None
        try:
            return unverified_claims(self.token)
        except JWTError:
            return None

    async def login(self, credentials: dict[str, Any]) -> AuthResult:
        try:
            response = await self._client.post(f"{self._api_url}/{self._login_path}", json=credentials)
        except httpx.HTTPError as exc:
            return AuthResult(success=False, error=normalize_error(exc))
        try:
            raise_for_response(response)
        except HttpError as exc:
            _LOG.info("login_rejected status=%s", exc.status_code)
            return AuthResult(success=False, error=exc)
        try:
            payload = response.json() if response.content else {}
        except ValueError as exc:
            raise DataIntegrityError(f"Login response is not valid JSON (HTTP {response.status_code})") from exc
        token = str(payload.get(self._token_field) or "").strip() if isinstance(payload, dict) else ""
        if not token:
            raise DataIntegrityError(f'Login response has no "{self._token_field}" field')
        self.token = token
        _LOG.info("login_ok subject=%s", (self._claims() or {}).get("sub"))
        return AuthResult(success=True, redirect_to=self._home_redirect, authenticated=True)

    async def logout(self) -> AuthResult:
        self.token = None
        return AuthResult(success=True, redirect_to=self._login_redirect)

    async def check(self) -> AuthResult:
        claims = self._claims()
        if claims is None or token_expired(claims):
            return AuthResult(success=False, redirect_to=self._login_redirect, logout=True)
        return AuthResult(success=True, authenticated=True)

    async def on_error(self, error: Exception) -> AuthResult:
        status_code = getattr(error, "status_code", None)
        if status_code in LOGOUT_STATUS_CODES:
            _LOG.info("auth_error_logout status=%s", status_code)
            return AuthResult(
                success=False,
                redirect_to=self._login_redirect,
                logout=True,
                error=error if isinstance(error, HttpError) else None,
            )
        return AuthResult(success=True)

    async def get_identity(self) -> dict[str, Any] | None:
        claims = self._claims()
        if claims is None:
            return None
        return {"id": claims.get("sub"), "email": claims.get("email"), "role": claims.get("role")}

    async def get_permissions(self) -> Any:
        claims = self._claims()
        if claims is None:
            return None
        return claims.get("role")
