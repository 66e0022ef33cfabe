"""Outbound HTTP calls with bounded exponential-backoff retry."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

logger = structlog.get_logger("restock.fetch")

JITTER_MAX_MS = 100.0


@dataclass(frozen=True)
class FetchRequest:
	"""Descriptor for one outbound call."""

	url: str
	method: str = "GET"
	headers: Mapping[str, str] = field(default_factory=dict)
	params: Mapping[str, Any] | None = None
	json: Any | None = None
	data: Mapping[str, str] | None = None


def is_retryable_status(status_code: int) -> bool:
	return status_code == 429 or 500 <= status_code <= 599


def backoff_delay_ms(retry_index: int, base_backoff_ms: float, jitter_ms: float = 0.0) -> float:
	"""Delay before retry ``retry_index`` (0 = first retry)."""
	return base_backoff_ms * (2**retry_index) + jitter_ms


class RetryingFetchClient:
	"""Wraps an ``httpx.AsyncClient`` and retries 429 / 5xx / transport failures.

	Every other status, success or not, is returned on the first attempt.
	When retries run out the last response is returned, or the last
	``httpx.TransportError`` re-raised if the final attempt never got one.
	There is no circuit breaker; each call retries independently.
	"""

	def __init__(
		self,
		client: httpx.AsyncClient,
		*,
		sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
		jitter: Callable[[], float] | None = None,
	):
		self.client = client
		self._sleep = sleep
		self._jitter = jitter or (lambda: random.uniform(0.0, JITTER_MAX_MS))

	async def fetch(
		self,
		request: FetchRequest,
		retries: int = 3,
		base_backoff_ms: float = 300,
	) -> httpx.Response:
		attempts = max(0, retries) + 1
		last_status: int | None = None
		last_error: str | None = None
		attempt = 0

		while True:
			if attempt > 0:
				delay_ms = backoff_delay_ms(attempt - 1, base_backoff_ms, self._jitter())
				logger.info(
					"provider_fetch_retry",
					url=request.url,
					attempt=attempt,
					delay_ms=round(delay_ms, 1),
					status_code=last_status,
					error=last_error,
				)
				await self._sleep(delay_ms / 1000.0)

			final_attempt = attempt == attempts - 1
			try:
				response = await self.client.request(
					request.method,
					request.url,
					headers=dict(request.headers),
					params=request.params,
					json=request.json,
					data=request.data,
				)
			except httpx.TransportError as exc:
				if final_attempt:
					logger.warning("provider_fetch_exhausted", url=request.url, attempts=attempts, error=str(exc))
					raise
				last_status, last_error = None, str(exc)
			else:
				if not is_retryable_status(response.status_code):
					return response
				if final_attempt:
					logger.warning(
						"provider_fetch_exhausted",
						url=request.url,
						attempts=attempts,
						status_code=response.status_code,
					)
					return response
				last_status, last_error = response.status_code, None
			attempt += 1
