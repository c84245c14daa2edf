from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Sequence

from dataprovider.schemas.query import FilterClause, ListQuery, Pagination, SortClause
from dataprovider.services.errors import DataProviderError, HttpError
from dataprovider.services.rest_provider import RestDataProvider


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected an integer, got {raw!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"Must be at least 1, got {value}")
    return value


def _parse_sort(raw: str) -> SortClause:
    field, _, order = raw.partition(":")
    return SortClause(field=field.strip(), order=(order.strip().lower() or "asc"))


def _parse_filter(raw: str) -> FilterClause:
    parts = raw.split(":", 2)
    if len(parts) == 2:
        return FilterClause(field=parts[0].strip(), operator="eq", value=parts[1])
    if len(parts) == 3:
        return FilterClause(field=parts[0].strip(), operator=parts[1].strip().lower(), value=parts[2])
    raise argparse.ArgumentTypeError(f"Filter must be field:value or field:operator:value, got {raw!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch one page of a REST resource and print it as JSON")
    parser.add_argument("resource", help="Resource name, e.g. posts")
    parser.add_argument("--api-url", default=None, help="Base URL (defaults to API_URL setting)")
    parser.add_argument("--page", type=_positive_int, default=1, help="Page number, starting at 1")
    parser.add_argument("--page-size", type=_positive_int, default=10, help="Records per page")
    parser.add_argument("--no-pagination", action="store_true", help="Fetch without _start/_end windowing")
    parser.add_argument(
        "--sort",
        action="append",
        dest="sort",
        type=_parse_sort,
        default=None,
        help="field:asc|desc (repeatable, primary first)",
    )
    parser.add_argument(
        "--filter",
        action="append",
        dest="filters",
        type=_parse_filter,
        default=None,
        help="field:value or field:eq|ne|gte|lte|contains:value (repeatable)",
    )
    return parser


async def fetch_list(args: argparse.Namespace) -> dict:
    query = ListQuery(
        pagination=Pagination(
            current=args.page,
            page_size=args.page_size,
            mode="off" if args.no_pagination else "server",
        ),
        sort=args.sort,
        filters=args.filters,
    )
    async with RestDataProvider(args.api_url) as provider:
        result = await provider.get_list(args.resource, query)
    return {"total": result.total, "records": result.records}


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        payload = asyncio.run(fetch_list(args))
    except HttpError as exc:
        print(json.dumps(exc.as_payload(), ensure_ascii=False), file=sys.stderr)
        return 1
    except DataProviderError as exc:
        print(json.dumps({"message": str(exc), "statusCode": None}, ensure_ascii=False), file=sys.stderr)
        return 2
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
