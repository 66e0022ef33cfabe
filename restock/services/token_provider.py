"""OAuth bearer-token provider with expiry-aware caching."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Protocol

import structlog

from restock.config import Settings
from restock.services.fetch_client import FetchRequest, RetryingFetchClient

logger = structlog.get_logger("restock.token")

DEFAULT_EXPIRES_IN_SECONDS = 3300
REFRESH_MARGIN_SECONDS = 10.0


class TokenError(RuntimeError):
	"""Raised when a bearer token cannot be obtained."""


class ProviderConfigError(ValueError):
	"""Raised when required provider configuration is missing."""


class TokenProvider(Protocol):
	async def get_token(self) -> str: ...

	def invalidate(self) -> None: ...


class OAuthTokenProvider:
	"""Exchanges a long-lived refresh token for short-lived access tokens.

	The access token is reused until ``REFRESH_MARGIN_SECONDS`` before it
	expires. Concurrent callers share one in-flight refresh.
	"""

	def __init__(
		self,
		fetcher: RetryingFetchClient,
		settings: Settings,
		*,
		clock: Callable[[], float] = time.monotonic,
	):
		self.fetcher = fetcher
		self.settings = settings
		self._clock = clock
		self._lock = asyncio.Lock()
		self._access_token: str | None = None
		self._expires_at = 0.0

	def _require_credentials(self) -> tuple[str, str, str]:
		missing = [
			name
			for name, value in (
				("zoho_refresh_token", self.settings.zoho_refresh_token),
				("zoho_client_id", self.settings.zoho_client_id),
				("zoho_client_secret", self.settings.zoho_client_secret),
			)
			if not value
		]
		if missing:
			raise ProviderConfigError(f"Missing provider OAuth settings: {', '.join(missing)}")
		return (
			self.settings.zoho_refresh_token,
			self.settings.zoho_client_id,
			self.settings.zoho_client_secret,
		)

	def _is_fresh(self) -> bool:
		return self._access_token is not None and self._expires_at > self._clock() + REFRESH_MARGIN_SECONDS

	async def get_token(self) -> str:
		if self._is_fresh():
			return self._access_token  # type: ignore[return-value]

		async with self._lock:
			if self._is_fresh():
				return self._access_token  # type: ignore[return-value]
			return await self._refresh()

	def invalidate(self) -> None:
		self._access_token = None
		self._expires_at = 0.0

	async def _refresh(self) -> str:
		refresh_token, client_id, client_secret = self._require_credentials()
		response = await self.fetcher.fetch(
			FetchRequest(
				url=f"{self.settings.zoho_accounts_base.rstrip('/')}/oauth/v2/token",
				method="POST",
				headers={"Content-Type": "application/x-www-form-urlencoded"},
				data={
					"grant_type": "refresh_token",
					"refresh_token": refresh_token,
					"client_id": client_id,
					"client_secret": client_secret,
				},
			),
			retries=self.settings.fetch_retries,
			base_backoff_ms=self.settings.fetch_backoff_ms,
		)
		if not response.is_success:
			raise TokenError(f"Token fetch failed: {response.status_code} {response.text[:200]}")

		payload = response.json()
		token = payload.get("access_token") if isinstance(payload, dict) else None
		if not token:
			raise TokenError(f"Token response missing access_token: {payload!r}"[:300])

		try:
			expires_in = float(payload.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS)
		except (TypeError, ValueError):
			expires_in = DEFAULT_EXPIRES_IN_SECONDS

		self._access_token = str(token)
		self._expires_at = self._clock() + expires_in
		logger.info("provider_token_refreshed", expires_in=expires_in)
		return self._access_token
