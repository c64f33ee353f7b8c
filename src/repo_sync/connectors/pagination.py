"""Pagination drivers for code host list endpoints."""

from collections.abc import Awaitable, Callable
from typing import Any, NamedTuple

import structlog

from repo_sync.core.exceptions import ProtocolError

logger = structlog.get_logger(__name__)


class Page(NamedTuple):
    """One page of records plus the total the provider declared, if any."""

    records: list[Any]
    total_count: int | None


FetchPage = Callable[[int], Awaitable[Page]]


async def paginate(fetch_page: FetchPage) -> list[Any]:
    """Fetch pages 1, 2, ... until the declared total has been collected.

    The total is read from the first page only. A first page without a
    total raises ``ProtocolError`` before any further request is made.
    """
    first = await fetch_page(1)
    if first.total_count is None:
        raise ProtocolError("Response did not declare a total count")

    total = first.total_count
    records = list(first.records)
    page = 1
    while len(records) < total:
        page += 1
        result = await fetch_page(page)
        if not result.records:
            raise ProtocolError(
                f"Page {page} was empty after {len(records)} of {total} records",
                details={"page": page, "received": len(records), "total": total},
            )
        records.extend(result.records)

    logger.debug("Pagination complete", pages=page, records=len(records))
    return records


async def paginate_until_exhausted(
    fetch_page: Callable[[int], Awaitable[tuple[list[Any], bool]]],
) -> list[Any]:
    """Fetch pages until the provider reports there is no next page.

    For providers (GitHub) that advertise continuation through ``Link``
    headers instead of a total count. ``fetch_page`` returns
    ``(records, has_next)``.
    """
    records: list[Any] = []
    page = 0
    has_next = True
    while has_next:
        page += 1
        batch, has_next = await fetch_page(page)
        records.extend(batch)
    logger.debug("Pagination complete", pages=page, records=len(records))
    return records
