"""Structured logging setup plus per-request IDs and job-scoped log context."""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from restock.config import LogFormat, Settings, get_settings

SERVICE_NAME = "restock"
QUIET_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})
_JOB_PATH = re.compile(r"/precompute/jobs/(?P<job_id>[0-9a-fA-F-]{36})(?:/|$)")

_configured = False


def _add_service(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
	event_dict.setdefault("service", SERVICE_NAME)
	return event_dict


def configure_structured_logging(settings: Settings | None = None) -> None:
	"""Route structlog (and stdlib ``logging``) output once per process.

	Chunk runs are driven both by the API and by ``scripts/run_precompute``;
	both call this before the first log line.
	"""
	global _configured
	if _configured:
		return

	settings = settings or get_settings()
	log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

	if settings.log_format == LogFormat.json:
		renderer: Any = structlog.processors.JSONRenderer(sort_keys=True)
		logging.basicConfig(level=log_level, format="%(message)s")
	else:
		renderer = structlog.dev.ConsoleRenderer()
		logging.basicConfig(level=log_level, format="%(levelname)s %(name)s %(message)s")

	structlog.configure(
		processors=[
			structlog.contextvars.merge_contextvars,
			structlog.processors.add_log_level,
			structlog.processors.TimeStamper(fmt="iso", utc=True),
			_add_service,
			structlog.processors.format_exc_info,
			renderer,
		],
		wrapper_class=structlog.make_filtering_bound_logger(log_level),
		logger_factory=structlog.PrintLoggerFactory(),
		cache_logger_on_first_use=True,
	)
	_configured = True


def job_id_from_path(path: str) -> str | None:
	match = _JOB_PATH.search(path)
	return match.group("job_id").lower() if match else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
	"""Binds ``request_id`` (and ``job_id`` on job routes) for every log line
	emitted while the request runs, then logs one timing line per request."""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
		request.state.request_id = request_id

		structlog.contextvars.clear_contextvars()
		context: dict[str, str] = {"request_id": request_id}
		job_id = job_id_from_path(request.url.path)
		if job_id is not None:
			context["job_id"] = job_id
		structlog.contextvars.bind_contextvars(**context)

		logger = structlog.get_logger("restock.request")
		started = time.perf_counter()
		try:
			response = await call_next(request)
		except Exception:
			logger.exception(
				"http_request_failed",
				method=request.method,
				path=request.url.path,
				duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
			)
			raise

		response.headers["x-request-id"] = request_id
		fields = {
			"method": request.method,
			"path": request.url.path,
			"status_code": response.status_code,
			"duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
		}
		if response.status_code >= 500:
			logger.error("http_request", **fields)
		elif response.status_code >= 400:
			logger.warning("http_request", **fields)
		elif request.url.path in QUIET_PATHS:
			logger.debug("http_request", **fields)
		else:
			logger.info("http_request", **fields)
		return response
