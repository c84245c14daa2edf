from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

TRANSPORT_STATUS_CODE = 0
GENERIC_TRANSPORT_MESSAGE = "Network error: no response from backend"

_LOG = logging.getLogger("dataprovider.provider")


class DataProviderError(Exception):
    pass


class HttpError(DataProviderError):
    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def as_payload(self) -> dict[str, Any]:
        return {"message": self.message, "statusCode": self.status_code}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class TransportError(HttpError):
    """The backend could not be reached, so there is no status code to report."""

    def __init__(self, message: str = GENERIC_TRANSPORT_MESSAGE):
        super().__init__(message, TRANSPORT_STATUS_CODE)


class RequestCancelled(TransportError):
    def __init__(self, message: str = "Request cancelled"):
        super().__init__(message)


class UnsupportedOperatorError(DataProviderError):
    def __init__(self, operator: Any):
        super().__init__(f"Unsupported filter operator: {operator!r}")
        self.operator = operator


class DataIntegrityError(DataProviderError):
    pass


class BatchOperationError(DataProviderError):
    """
    Raised by the *_many operations when at least one item failed.

    Items that completed are not rolled back; they are reported in ``completed``
    keyed by their input index. ``first_error`` is the failure with the lowest
    input index.
    """

    def __init__(self, operation: str, completed: dict[int, Any], failed: dict[int, DataProviderError]):
        first_index = min(failed)
        self.operation = operation
        self.completed = completed
        self.failed = failed
        self.first_error = failed[first_index]
        super().__init__(
            f"{operation}: {len(failed)} of {len(completed) + len(failed)} items failed; "
            f"first failure at index {first_index}: {self.first_error}"
        )


def _message_from_body(response: httpx.Response) -> str | None:
    try:
        payload = response.json() if response.content else None
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def http_error_from_response(response: httpx.Response) -> HttpError:
    message = _message_from_body(response) or response.reason_phrase or f"HTTP {response.status_code}"
    return HttpError(message, response.status_code)


def normalize_error(exc: BaseException) -> DataProviderError:
    if isinstance(exc, DataProviderError):
        return exc
    if isinstance(exc, asyncio.CancelledError):
        return RequestCancelled()
    if isinstance(exc, httpx.HTTPStatusError):
        return http_error_from_response(exc.response)
    if isinstance(exc, httpx.RequestError):
        _LOG.warning("transport_error kind=%s detail=%s", exc.__class__.__name__, exc)
        return TransportError()
    _LOG.warning("unexpected_error kind=%s detail=%s", exc.__class__.__name__, exc)
    return TransportError(f"{GENERIC_TRANSPORT_MESSAGE} ({exc.__class__.__name__})")


def raise_for_response(response: httpx.Response) -> httpx.Response:
    if response.is_success:
        return response
    raise http_error_from_response(response)
