"""Fetch an exact logical slice of a paginated catalog."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from restock.schemas.provider import CatalogItem, ItemPage

ListPage = Callable[[int, int], Awaitable[ItemPage]]


def page_span(start: int, count: int, page_size: int) -> tuple[int, int]:
	"""1-based first and last provider page covering ``[start, start + count)``."""
	if count <= 0:
		raise ValueError("count must be positive")
	if page_size <= 0:
		raise ValueError("page_size must be positive")
	start_page = start // page_size + 1
	end_page = (start + count - 1) // page_size + 1
	return start_page, end_page


async def fetch_range(start: int, count: int, page_size: int, list_page: ListPage) -> list[CatalogItem]:
	"""Return catalog items at logical offsets ``[start, start + count)``.

	Only the pages overlapping the range are requested, one after another.
	A short result means the provider ran out of items, not an error.
	"""
	if start < 0:
		raise ValueError("start must be non-negative")
	if count <= 0:
		return []

	start_page, end_page = page_span(start, count, page_size)
	accumulated: list[CatalogItem] = []
	for page in range(start_page, end_page + 1):
		result = await list_page(page, page_size)
		accumulated.extend(result.items)
		if not result.has_more_page:
			break

	offset = start % page_size
	return accumulated[offset : offset + count]
