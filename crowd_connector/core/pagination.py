"""Paginated enumeration over Crowd's 0-based windowed listings.

The host numbers pages from 1 and uses 0 for "give me everything"; Crowd
takes an explicit ``start-index`` / ``max-results`` window.
"""
from __future__ import annotations
import logging
from typing import Callable, List, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

FetchPage = Callable[[int, int], Sequence[T]]
Handler = Callable[[T], bool]


def enumerate_pages(handler: Handler, page_size: int, page_offset: int, fetch_page: FetchPage) -> int:
    """Feed remote objects to ``handler`` until exhausted or told to stop.

    Args:
        handler: Called per object; returning False stops enumeration
        page_size: Window size for each fetch
        page_offset: Host page offset (< 1 means fetch everything)
        fetch_page: ``fetch_page(start, size)`` returning a list (empty at end)

    Returns:
        Number of objects delivered to the handler
    """
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")

    count = 0

    if page_offset < 1:
        start = 0
        while True:
            page = fetch_page(start, page_size)
            logger.debug(f"Fetched {len(page)} object(s) at start={start}")
            if not page:
                return count
            for obj in page:
                count += 1
                if not handler(obj):
                    return count
            start += page_size

    # Host offset is passed straight through as a 0-based start index
    page = fetch_page(page_offset - 1, page_size)
    logger.debug(f"Fetched {len(page)} object(s) at start={page_offset - 1}")
    for obj in page:
        count += 1
        if not handler(obj):
            break
    return count


def fetch_all(fetch_page: FetchPage, page_size: int) -> List[T]:
    """Collect every object of a paged listing."""
    collected: List[T] = []

    def _collect(obj: T) -> bool:
        collected.append(obj)
        return True

    enumerate_pages(_collect, page_size, 0, fetch_page)
    return collected
