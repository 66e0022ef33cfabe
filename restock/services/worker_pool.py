"""Bounded-concurrency task runner with work stealing and ordered results."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

import structlog

T = TypeVar("T")
R = TypeVar("R")

logger = structlog.get_logger("restock.worker_pool")


async def run_bounded(
	items: Sequence[T],
	concurrency_limit: int,
	task: Callable[[T, int], Awaitable[R | None]],
	*,
	fatal: tuple[type[Exception], ...] = (),
) -> list[R | None]:
	"""Run ``task(item, index)`` over ``items`` with at most ``concurrency_limit`` in flight.

	Workers claim the next unclaimed index from a shared counter until none
	remain. ``results[i]`` always corresponds to ``items[i]``; a task that
	raises yields ``None`` in its slot instead of cancelling its siblings.

	Exceptions listed in ``fatal`` are not absorbed: once one is raised no
	further indices are claimed, in-flight tasks finish, and the first such
	exception is re-raised to the caller.
	"""
	results: list[R | None] = [None] * len(items)
	if not items:
		return results

	next_index = 0
	failure: Exception | None = None

	async def worker() -> None:
		nonlocal next_index, failure
		while failure is None:
			index = next_index
			if index >= len(items):
				return
			next_index += 1
			try:
				results[index] = await task(items[index], index)
			except fatal as exc:
				logger.warning("worker_task_aborted", index=index, error=str(exc), error_type=type(exc).__name__)
				if failure is None:
					failure = exc
			except Exception as exc:
				logger.warning("worker_task_failed", index=index, error=str(exc), error_type=type(exc).__name__)
				results[index] = None

	worker_count = min(max(1, concurrency_limit), len(items))
	await asyncio.gather(*(worker() for _ in range(worker_count)))
	if failure is not None:
		raise failure
	return results
