from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Generic, Literal, TypeVar, cast

from typing_extensions import TypedDict

T = TypeVar("T")

__all__ = [
    "PageRequest",
    "PageMeta",
    "PageResponse",
    "parse_page_params",
    "make_page_response",
    "PaginationError",
]

# ---- Contracts -----------------------------------------------------------------


class PageRequest(TypedDict):
    page: int  # 1-based
    limit: int
    order_by: str | None
    order: Literal["asc", "desc"]


class PageMeta(TypedDict):
    page: int
    limit: int
    total: int
    totalPages: int


class PageResponse(TypedDict, Generic[T]):  # type: ignore[misc]
    ok: Literal[True]
    items: list[T]
    pagination: PageMeta


class PaginationError(ValueError):
    """Raised when pagination query params are invalid."""


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def parse_page_params(
    args: Mapping[str, str | None],
    *,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
    default_order_by: str | None = None,
    default_order: Literal["asc", "desc"] = "desc",
) -> PageRequest:
    """Parse & validate `page`/`limit`/`orderBy`/`orderDirection` from request.args.

    Caps limit to max_limit; raises PaginationError on invalid numeric input.
    """
    page_raw = args.get("page")
    limit_raw = args.get("limit")
    order_by = args.get("orderBy") or default_order_by
    order_raw = (args.get("orderDirection") or default_order).lower()

    try:
        page = int(page_raw) if page_raw else DEFAULT_PAGE
    except ValueError as e:
        raise PaginationError("invalid page parameter") from e
    try:
        limit = int(limit_raw) if limit_raw else default_limit
    except ValueError as e:
        raise PaginationError("invalid limit parameter") from e

    if page < 1:
        raise PaginationError("page must be >= 1")
    if limit < 1:
        raise PaginationError("limit must be >= 1")
    if limit > max_limit:
        limit = max_limit
    if order_raw not in ("asc", "desc"):
        order_raw = default_order

    order = cast(Literal["asc", "desc"], order_raw)
    return PageRequest(page=page, limit=limit, order_by=order_by, order=order)


def offset_of(page_req: PageRequest) -> int:
    return (page_req["page"] - 1) * page_req["limit"]


def make_page_response(items: Sequence[T], page_req: PageRequest, total: int) -> PageResponse[T]:
    pages = (total + page_req["limit"] - 1) // page_req["limit"] if page_req["limit"] else 0
    return PageResponse(  # type: ignore[call-arg]
        ok=True,
        items=list(items),
        pagination=PageMeta(
            page=page_req["page"],
            limit=page_req["limit"],
            total=total,
            totalPages=pages,
        ),
    )
