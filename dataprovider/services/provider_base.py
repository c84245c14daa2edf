from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Sequence

from dataprovider.schemas.query import CustomRequest, ListQuery, ListResult, Record, RecordId, ResourceName


class DataProvider(ABC):
    """
    Contract every backend adapter implements.

    All operations are coroutines. ``signal`` is an optional cancellation event:
    once set, an in-flight operation is aborted with ``RequestCancelled``.
    """

    @abstractmethod
    def get_api_url(self) -> str:
        ...

    @abstractmethod
    async def create(
        self, resource: ResourceName, payload: Record, *, signal: asyncio.Event | None = None
    ) -> Record:
        ...

    @abstractmethod
    async def create_many(
        self, resource: ResourceName, payloads: Sequence[Record], *, signal: asyncio.Event | None = None
    ) -> list[Record]:
        ...

    @abstractmethod
    async def get_one(
        self, resource: ResourceName, record_id: RecordId, *, signal: asyncio.Event | None = None
    ) -> Record:
        ...

    @abstractmethod
    async def get_many(
        self, resource: ResourceName, ids: Sequence[RecordId], *, signal: asyncio.Event | None = None
    ) -> list[Record]:
        ...

    @abstractmethod
    async def get_list(
        self, resource: ResourceName, query: ListQuery | None = None, *, signal: asyncio.Event | None = None
    ) -> ListResult:
        ...

    @abstractmethod
    async def update(
        self,
        resource: ResourceName,
        record_id: RecordId,
        payload: Record,
        *,
        signal: asyncio.Event | None = None,
    ) -> Record:
        ...

    @abstractmethod
    async def update_many(
        self,
        resource: ResourceName,
        ids: Sequence[RecordId],
        payload: Record,
        *,
        signal: asyncio.Event | None = None,
    ) -> list[Record]:
        ...

    @abstractmethod
    async def delete_one(
        self, resource: ResourceName, record_id: RecordId, *, signal: asyncio.Event | None = None
    ) -> Any:
        ...

    @abstractmethod
    async def delete_many(
        self, resource: ResourceName, ids: Sequence[RecordId], *, signal: asyncio.Event | None = None
    ) -> list[Any]:
        ...

    @abstractmethod
    async def custom(self, request: CustomRequest, *, signal: asyncio.Event | None = None) -> Any:
        ...
