from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Sequence
from urllib.parse import quote

import httpx

from dataprovider.core.config import settings
from dataprovider.core.request_tracing import client_event_hooks
from dataprovider.schemas.query import CustomRequest, ListQuery, ListResult, Record, RecordId, ResourceName
from dataprovider.services.errors import (
    BatchOperationError,
    DataIntegrityError,
    DataProviderError,
    RequestCancelled,
    TransportError,
    normalize_error,
    raise_for_response,
)
from dataprovider.services.provider_base import DataProvider
from dataprovider.services.query_encoder import (
    MISSING_TOTAL_POLICIES,
    encode_filter,
    encode_list_query,
    encode_sort,
    flatten_params,
    parse_total_count,
)

_LOG = logging.getLogger("dataprovider.provider")

BATCH_MODES = {"concurrent", "sequential"}
BODY_METHODS = {"post", "put", "patch"}


class RestDataProvider(DataProvider):
    """
    json-server style REST adapter over one shared ``httpx.AsyncClient``.

    Headers given at construction (plus ``DEFAULT_HEADERS`` from settings) are
    copied into every request; per-call headers in ``custom`` are merged on top
    for that request only. The shared client is never mutated.
    """

    def __init__(
        self,
        api_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        total_count_header: str | None = None,
        missing_total_policy: str | None = None,
        batch_mode: str | None = None,
        max_concurrency: int | None = None,
        auth: httpx.Auth | None = None,
    ):
        self._api_url = str(api_url or settings.API_URL).strip().rstrip("/")
        self._headers = {**settings.default_headers_map, **dict(headers or {})}
        self._total_count_header = str(total_count_header or settings.TOTAL_COUNT_HEADER).strip().lower()
        self._missing_total_policy = str(missing_total_policy or settings.MISSING_TOTAL_POLICY).strip().lower()
        self._batch_mode = str(batch_mode or settings.BATCH_MODE).strip().lower()
        self._max_concurrency = int(settings.BATCH_MAX_CONCURRENCY if max_concurrency is None else max_concurrency)
        self._auth = auth
        if self._missing_total_policy not in MISSING_TOTAL_POLICIES:
            raise ValueError(f"Unknown MISSING_TOTAL_POLICY: {self._missing_total_policy}")
        if self._batch_mode not in BATCH_MODES:
            raise ValueError(f"Unknown BATCH_MODE: {self._batch_mode}")

        if client is None:
            self._client = httpx.AsyncClient(
                timeout=float(timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS),
                event_hooks=client_event_hooks(),
            )
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    async def __aenter__(self) -> "RestDataProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def get_api_url(self) -> str:
        return self._api_url

    def _url(self, resource: ResourceName, record_id: RecordId | None = None) -> str:
        url = f"{self._api_url}/{str(resource).strip('/')}"
        if record_id is not None:
            url = f"{url}/{quote(str(record_id), safe='')}"
        return url

    def _resolve_custom_url(self, url: str) -> str:
        text = str(url or "").strip()
        if text.startswith(("http://", "https://")):
            return text
        return f"{self._api_url}/{text.lstrip('/')}"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        signal: asyncio.Event | None = None,
    ) -> httpx.Response:
        try:
            target = httpx.URL(url)
        except (httpx.InvalidURL, ValueError) as exc:
            raise TransportError(f"Invalid request URL {url!r}: {exc}") from exc
        try:
            request = self._client.build_request(
                method.upper(),
                target,
                params=flatten_params(params) if params else None,
                json=json,
                headers=dict(headers) if headers is not None else dict(self._headers),
            )
        except (TypeError, ValueError) as exc:
            raise DataIntegrityError(f"Request for {method.upper()} {url} could not be encoded: {exc}") from exc
        auth = self._auth if self._auth is not None else httpx.USE_CLIENT_DEFAULT
        try:
            if signal is None:
                response = await self._client.send(request, auth=auth)
            else:
                response = await self._send_cancellable(request, auth, signal)
        except httpx.HTTPError as exc:
            raise normalize_error(exc) from exc
        return raise_for_response(response)

    async def _send_cancellable(self, request: httpx.Request, auth, signal: asyncio.Event) -> httpx.Response:
        if signal.is_set():
            raise RequestCancelled()
        send_task = asyncio.ensure_future(self._client.send(request, auth=auth))
        cancel_task = asyncio.ensure_future(signal.wait())
        try:
            done, _ = await asyncio.wait({send_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            send_task.cancel()
            raise
        finally:
            cancel_task.cancel()
        if send_task in done:
            return send_task.result()
        send_task.cancel()
        try:
            await send_task
        except asyncio.CancelledError:
            pass
        _LOG.info("request_cancelled method=%s url=%s", request.method, request.url)
        raise RequestCancelled()

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DataIntegrityError(f"Response body is not valid JSON (HTTP {response.status_code})") from exc

    @staticmethod
    def _records(body: Any, operation: str, resource: ResourceName) -> list[Record]:
        if not isinstance(body, list) or not all(isinstance(item, dict) for item in body):
            raise DataIntegrityError(f"Expected a list of records for {operation} on {resource!r}")
        return body

    @staticmethod
    def _raise_unexpected(operation: str, outcomes: list[Any]) -> None:
        # Every item has settled by now; a non-provider error is re-raised for the lowest index.
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                _LOG.error(
                    "batch_unexpected_error operation=%s index=%s kind=%s",
                    operation,
                    index,
                    outcome.__class__.__name__,
                )
                raise outcome

    async def _run_batch(self, operation: str, calls: Sequence[Callable[[], Awaitable[Any]]]) -> list[Any]:
        results: list[Any] = [None] * len(calls)
        failed: dict[int, DataProviderError] = {}

        async def _run(index: int, call: Callable[[], Awaitable[Any]]) -> None:
            try:
                results[index] = await call()
            except DataProviderError as exc:
                failed[index] = exc

        if self._batch_mode == "sequential":
            for index, call in enumerate(calls):
                await _run(index, call)
        elif self._max_concurrency > 0:
            semaphore = asyncio.Semaphore(self._max_concurrency)

            async def _bounded(index: int, call: Callable[[], Awaitable[Any]]) -> None:
                async with semaphore:
                    await _run(index, call)

            outcomes = await asyncio.gather(*(_bounded(i, c) for i, c in enumerate(calls)), return_exceptions=True)
            self._raise_unexpected(operation, outcomes)
        else:
            outcomes = await asyncio.gather(*(_run(i, c) for i, c in enumerate(calls)), return_exceptions=True)
            self._raise_unexpected(operation, outcomes)

        if failed:
            completed = {i: results[i] for i in range(len(calls)) if i not in failed}
            _LOG.warning(
                "batch_partial_failure operation=%s failed=%s completed=%s",
                operation,
                sorted(failed),
                sorted(completed),
            )
            raise BatchOperationError(operation, completed, failed)
        return results

    async def create(
        self, resource: ResourceName, payload: Record, *, signal: asyncio.Event | None = None
    ) -> Record:
        response = await self._send("post", self._url(resource), json=payload, signal=signal)
        return self._body(response)

    async def create_many(
        self, resource: ResourceName, payloads: Sequence[Record], *, signal: asyncio.Event | None = None
    ) -> list[Record]:
        calls = [lambda p=p: self.create(resource, p, signal=signal) for p in payloads]
        return await self._run_batch("create_many", calls)

    async def get_one(
        self, resource: ResourceName, record_id: RecordId, *, signal: asyncio.Event | None = None
    ) -> Record:
        response = await self._send("get", self._url(resource, record_id), signal=signal)
        return self._body(response)

    async def get_many(
        self, resource: ResourceName, ids: Sequence[RecordId], *, signal: asyncio.Event | None = None
    ) -> list[Record]:
        id_list = list(ids)
        if not id_list:
            return []
        response = await self._send("get", self._url(resource), params={"id": id_list}, signal=signal)
        body = self._body(response)
        return self._records(body, "get_many", resource)

    async def get_list(
        self, resource: ResourceName, query: ListQuery | None = None, *, signal: asyncio.Event | None = None
    ) -> ListResult:
        params = encode_list_query(query)
        _LOG.debug("get_list resource=%s params=%s", resource, params)
        response = await self._send("get", self._url(resource), params=params, signal=signal)
        body = self._body(response)
        records = self._records(body, "get_list", resource)
        total = parse_total_count(
            response.headers.get(self._total_count_header),
            policy=self._missing_total_policy,
        )
        return ListResult(records=records, total=total)

    async def update(
        self,
        resource: ResourceName,
        record_id: RecordId,
        payload: Record,
        *,
        signal: asyncio.Event | None = None,
    ) -> Record:
        response = await self._send("patch", self._url(resource, record_id), json=payload, signal=signal)
        return self._body(response)

    async def update_many(
        self,
        resource: ResourceName,
        ids: Sequence[RecordId],
        payload: Record,
        *,
        signal: asyncio.Event | None = None,
    ) -> list[Record]:
        calls = [lambda rid=rid: self.update(resource, rid, payload, signal=signal) for rid in ids]
        return await self._run_batch("update_many", calls)

    async def delete_one(
        self, resource: ResourceName, record_id: RecordId, *, signal: asyncio.Event | None = None
    ) -> Any:
        response = await self._send("delete", self._url(resource, record_id), signal=signal)
        return self._body(response)

    async def delete_many(
        self, resource: ResourceName, ids: Sequence[RecordId], *, signal: asyncio.Event | None = None
    ) -> list[Any]:
        calls = [lambda rid=rid: self.delete_one(resource, rid, signal=signal) for rid in ids]
        return await self._run_batch("delete_many", calls)

    async def custom(self, request: CustomRequest, *, signal: asyncio.Event | None = None) -> Any:
        params: dict[str, Any] = {}
        if request.sort is not None:
            params.update(encode_sort(request.sort))
        if request.filters is not None:
            params.update(encode_filter(request.filters))
        if request.query:
            params.update(request.query)
        headers = {**self._headers, **dict(request.headers or {})}

        method = str(request.method or "get").strip().lower()
        if method in BODY_METHODS:
            response = await self._send(
                method,
                self._resolve_custom_url(request.url),
                params=params,
                json=request.payload,
                headers=headers,
                signal=signal,
            )
        elif method == "delete":
            response = await self._send(
                "delete", self._resolve_custom_url(request.url), params=params, headers=headers, signal=signal
            )
        else:
            response = await self._send(
                "get", self._resolve_custom_url(request.url), params=params, headers=headers, signal=signal
            )
        return self._body(response)
