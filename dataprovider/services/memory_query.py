from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from fastapi import HTTPException

RESERVED_PARAMS = {"_start", "_end", "_sort", "_order"}
FILTER_SUFFIXES = ("_ne", "_gte", "_lte", "_like")


@dataclass
class MemoryFilter:
    field: str
    op: str
    values: list[str]


@dataclass
class MemoryListParams:
    start: int | None = None
    end: int | None = None
    sort: list[tuple[str, str]] = field(default_factory=list)
    filters: list[MemoryFilter] = field(default_factory=list)


def _bad_param(name: str, kind: str) -> HTTPException:
    return HTTPException(status_code=400, detail=f'Invalid value for query parameter "{name}" ({kind})')


def _parse_window_bound(name: str, raw: str | None) -> int | None:
    if raw is None or not str(raw).strip():
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise _bad_param(name, "integer")
    if value < 0:
        raise _bad_param(name, "non-negative integer")
    return value


def _split_filter_key(key: str) -> tuple[str, str]:
    for suffix in FILTER_SUFFIXES:
        if key.endswith(suffix) and len(key) > len(suffix):
            return key[: -len(suffix)], suffix[1:]
    return key, "eq"


def parse_list_params(items: Iterable[tuple[str, str]]) -> MemoryListParams:
    params = MemoryListParams()
    grouped: dict[tuple[str, str], list[str]] = {}
    raw_reserved: dict[str, str] = {}
    for key, value in items:
        if key in RESERVED_PARAMS:
            raw_reserved[key] = value
            continue
        if key.startswith("_"):
            continue
        grouped.setdefault(_split_filter_key(key), []).append(value)

    params.start = _parse_window_bound("_start", raw_reserved.get("_start"))
    params.end = _parse_window_bound("_end", raw_reserved.get("_end"))

    sort_fields = [f.strip() for f in str(raw_reserved.get("_sort") or "").split(",") if f.strip()]
    orders = [o.strip().lower() for o in str(raw_reserved.get("_order") or "").split(",")]
    for index, sort_field in enumerate(sort_fields):
        order = orders[index] if index < len(orders) and orders[index] else "asc"
        if order not in {"asc", "desc"}:
            raise _bad_param("_order", "asc|desc")
        params.sort.append((sort_field, order))

    params.filters = [MemoryFilter(field=f, op=op, values=values) for (f, op), values in grouped.items()]
    return params


def _coerce_bool(name: str, value: str) -> bool:
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes", "y"}:
        return True
    if text in {"0", "false", "no", "n"}:
        return False
    raise _bad_param(name, "boolean")


def _coerce_number(name: str, value: str, python_type):
    text = str(value).strip()
    if not text:
        raise _bad_param(name, "number")
    try:
        return python_type(text.replace(",", "."))
    except (ValueError, TypeError):
        raise _bad_param(name, "number")


def coerce_filter_value(name: str, stored: Any, raw: str) -> Any:
    # Query strings carry text only; compare against the stored value's type.
    if isinstance(stored, bool):
        return _coerce_bool(name, raw)
    if isinstance(stored, (int, float)):
        return _coerce_number(name, raw, type(stored))
    return raw


def _matches(row: dict[str, Any], flt: MemoryFilter) -> bool:
    stored = row.get(flt.field)
    if flt.op == "like":
        haystack = "" if stored is None else str(stored).lower()
        return any(str(v).lower() in haystack for v in flt.values)
    if stored is None:
        return flt.op == "ne"
    values = [coerce_filter_value(flt.field, stored, v) for v in flt.values]
    if flt.op == "eq":
        return any(stored == v for v in values)
    if flt.op == "ne":
        return all(stored != v for v in values)
    try:
        if flt.op == "gte":
            return all(stored >= v for v in values)
        if flt.op == "lte":
            return all(stored <= v for v in values)
    except TypeError:
        return False
    return False


def apply_list_params(rows: list[dict[str, Any]], params: MemoryListParams) -> tuple[list[dict[str, Any]], int]:
    out = [row for row in rows if all(_matches(row, f) for f in params.filters)]
    # Stable sort applied from the least significant key to the primary one.
    # Rows without the field go last in either direction.
    for name, order in reversed(params.sort):
        present = [row for row in out if row.get(name) is not None]
        missing = [row for row in out if row.get(name) is None]
        try:
            present.sort(key=lambda row: row[name], reverse=order == "desc")
        except TypeError:
            raise _bad_param("_sort", f"mixed value types in {name}")
        out = present + missing
    total = len(out)
    start = params.start or 0
    end = params.end if params.end is not None else total
    return out[start:end], total
