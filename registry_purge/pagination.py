from typing import AsyncIterator, Awaitable, Callable, TypeVar

T = TypeVar("T")

PAGE_SIZE = 100

FetchPage = Callable[[int, int], Awaitable[list[T]]]


async def iter_pages(fetch_page: FetchPage[T], page_size: int = PAGE_SIZE) -> AsyncIterator[T]:
    """Yield items page by page, starting at page 1.

    A page holding fewer than ``page_size`` items is the last one, so a
    listing whose size is a multiple of ``page_size`` ends with an empty page.
    """
    page = 1
    while True:
        items = await fetch_page(page, page_size)
        for item in items:
            yield item
        if len(items) < page_size:
            return
        page += 1


async def drain_all(fetch_page: FetchPage[T], page_size: int = PAGE_SIZE) -> list[T]:
    return [item async for item in iter_pages(fetch_page, page_size)]
