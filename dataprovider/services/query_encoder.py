"""
Translation of list requests into json-server style query parameters.

Everything here is pure: no I/O, no configuration lookups. Defaults for absent
pagination and sort are resolved once, at this boundary.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping
from urllib.parse import urlencode

from dataprovider.schemas.query import FilterClause, ListQuery, Pagination, SortClause
from dataprovider.services.errors import DataIntegrityError, UnsupportedOperatorError

DEFAULT_PAGINATION = Pagination()
DEFAULT_SORT_FIELD = "id"
DEFAULT_SORT_ORDER = "desc"

OPERATOR_SUFFIXES = {
    "eq": "",
    "ne": "_ne",
    "gte": "_gte",
    "lte": "_lte",
    "contains": "_like",
}

MISSING_TOTAL_POLICIES = {"error", "unknown"}
_TOTAL_COUNT_RE = re.compile(r"[0-9]+")


def encode_pagination(pagination: Pagination | None) -> dict[str, int]:
    p = pagination if pagination is not None else DEFAULT_PAGINATION
    if p.mode == "off":
        return {}
    return {
        "_start": (p.current - 1) * p.page_size,
        "_end": p.current * p.page_size,
    }


def encode_sort(sort: Iterable[SortClause] | None) -> dict[str, str]:
    if sort is None:
        return {"_sort": DEFAULT_SORT_FIELD, "_order": DEFAULT_SORT_ORDER}
    clauses = list(sort)
    if not clauses:
        return {}
    return {
        "_sort": ",".join(c.field for c in clauses),
        "_order": ",".join(c.order for c in clauses),
    }


def map_operator(operator: Any) -> str:
    try:
        return OPERATOR_SUFFIXES[operator]
    except (KeyError, TypeError):
        raise UnsupportedOperatorError(operator) from None


def encode_filter(filters: Iterable[FilterClause] | None) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in filters or ():
        # Same field and operator twice: the later clause overwrites the earlier one.
        out[f"{f.field}{map_operator(f.operator)}"] = f.value
    return out


def encode_list_query(query: ListQuery | None) -> dict[str, Any]:
    q = query if query is not None else ListQuery()
    params: dict[str, Any] = {}
    params.update(encode_pagination(q.pagination))
    params.update(encode_sort(q.sort))
    params.update(encode_filter(q.filters))
    return params


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def flatten_params(params: Mapping[str, Any]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        if isinstance(value, (list, tuple)):
            pairs.extend((key, _query_value(item)) for item in value)
        else:
            pairs.append((key, _query_value(value)))
    return pairs


def build_query_string(params: Mapping[str, Any]) -> str:
    return urlencode(flatten_params(params))


def parse_total_count(raw: str | None, *, policy: str = "error") -> int | None:
    if policy not in MISSING_TOTAL_POLICIES:
        raise ValueError(f"Unknown missing-total policy: {policy}")
    if raw is None:
        if policy == "unknown":
            return None
        raise DataIntegrityError("Total count header is missing from the list response")
    text = str(raw).strip()
    if not _TOTAL_COUNT_RE.fullmatch(text):
        raise DataIntegrityError(f"Total count header is not a non-negative integer: {raw!r}")
    return int(text)
