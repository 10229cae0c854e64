"""Depagination of list-style remote APIs.

``depaginate`` repeatedly calls a page-fetch closure, gives every page its
own retry budget through ``retry``, and concatenates the items of all pages
in page order. The closure reads its cursor from a shared ``ListOptions``
which ``depaginate`` advances after each page.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar, Union

import structlog

from infrakit.common.context import CallContext
from infrakit.common.errors import (
    DepaginationError,
    NonAdvancingPageError,
    OperationCancelledError,
)
from infrakit.common.metrics import ClientMetrics, get_metrics
from infrakit.common.retry import RetryPolicy, Sleep, retry

logger = structlog.get_logger()

T = TypeVar("T")

PageCursor = Union[int, str, None]


@dataclass
class ListOptions:
    """Mutable paging state shared between ``depaginate`` and a page fetch.

    Attributes:
        page: Page number or page token to fetch next; None for the first page.
        per_page: Requested page size.
    """

    page: PageCursor = None
    per_page: int = 100


@dataclass
class Page(Generic[T]):
    """One batch of results plus the cursor of the following batch."""

    items: List[T] = field(default_factory=list)
    next_page: PageCursor = None

    @property
    def has_next(self) -> bool:
        return self.next_page not in (None, 0, "")


async def depaginate(
    description: str,
    max_retry_per_page: int,
    paging_state: ListOptions,
    page_fetch: Callable[[], Awaitable[Page[T]]],
    *,
    context: Optional[CallContext] = None,
    policy: Optional[RetryPolicy] = None,
    metrics: Optional[ClientMetrics] = None,
    sleep: Sleep = asyncio.sleep,
) -> List[T]:
    """Fetch every page of a listing and return all items in order.

    Args:
        description: Human-readable label used in logs and error messages.
        max_retry_per_page: Attempt budget given to each page.
        paging_state: Options the closure reads its cursor from.
        page_fetch: Zero-argument coroutine function fetching one page.
        context: Cancellation/deadline handle checked before every attempt.
        policy: Backoff policy for per-page retries.
        metrics: Metrics sink; defaults to the process-wide metrics.
        sleep: Coroutine used to wait between attempts.

    Returns:
        Items of all pages, page order then within-page order.

    Raises:
        DepaginationError: If a page failed terminally. ``items`` holds what
            earlier pages returned; ``__cause__`` is the page's error.
        NonAdvancingPageError: If the remote repeated the cursor of the page
            that was just fetched.
        OperationCancelledError: If the context was cancelled, unwrapped.
    """
    metrics = metrics or get_metrics()
    all_items: List[T] = []

    while True:
        current = paging_state.page
        try:
            page = await retry(
                f"{description} (page {current!r})",
                max_retry_per_page,
                page_fetch,
                context=context,
                policy=policy,
                metrics=metrics,
                sleep=sleep,
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.error(
                "Paginated listing failed",
                description=description,
                page=current,
                items_so_far=len(all_items),
                error=str(e),
            )
            raise DepaginationError(description, current, all_items, e) from e

        metrics.record_page()
        logger.debug(
            "Fetched page",
            description=description,
            page=current,
            item_count=len(page.items),
            next_page=page.next_page,
        )

        if page.has_next and page.next_page == current:
            logger.error(
                "Pagination did not advance",
                description=description,
                page=current,
            )
            raise NonAdvancingPageError(description, current, all_items)

        all_items.extend(page.items)
        if not page.has_next:
            return all_items
        paging_state.page = page.next_page
