from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional, Union

ResourceName = str
RecordId = Union[int, str]
Record = Dict[str, Any]

Operator = Literal["eq", "ne", "gte", "lte", "contains"]
Order = Literal["asc", "desc"]
PaginationMode = Literal["server", "off"]
Method = Literal["get", "post", "put", "patch", "delete"]

class Pagination(BaseModel):
    current: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)
    mode: PaginationMode = "server"

class SortClause(BaseModel):
    field: str
    order: Order

class FilterClause(BaseModel):
    field: str
    # Checked by the encoder so unknown operators raise UnsupportedOperatorError.
    operator: str = "eq"
    value: Any = None

class ListQuery(BaseModel):
    pagination: Optional[Pagination] = None
    sort: Optional[List[SortClause]] = None
    filters: Optional[List[FilterClause]] = None

class ListResult(BaseModel):
    records: List[Record] = []
    total: Optional[int] = Field(default=None, ge=0)

class CustomRequest(BaseModel):
    url: str
    method: str = "get"
    filters: Optional[List[FilterClause]] = None
    sort: Optional[List[SortClause]] = None
    payload: Any = None
    query: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None
