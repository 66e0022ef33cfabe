"""Precompute job routes: start, run one chunk, status, results."""

from __future__ import annotations

import uuid

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from restock.config import get_settings
from restock.database import get_db
from restock.schemas.jobs import (
	ChunkProgressResponse,
	ChunkRunRequest,
	JobStartRequest,
	JobStartResponse,
	JobStatusResponse,
	JobSuggestionsResponse,
)
from restock.services.job_store import ConcurrentChunkError, JobStore
from restock.services.precompute_service import PrecomputeService
from restock.services.provider_client import InventoryProviderClient, ProviderError
from restock.services.token_provider import TokenError

router = APIRouter(prefix="/precompute", tags=["precompute"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ConcurrentChunkError):
		return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	if isinstance(exc, (ProviderError, TokenError, httpx.HTTPError)):
		return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"provider failure: {exc}")
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="precompute failure")


def get_precompute_service(request: Request, db: AsyncSession = Depends(get_db)) -> PrecomputeService:
	settings = get_settings()
	provider = InventoryProviderClient(
		request.app.state.fetcher,
		request.app.state.token_provider,
		settings,
	)
	return PrecomputeService(
		JobStore(db),
		provider,
		getattr(request.app.state, "redis", None),
		settings=settings,
	)


async def _commit_and_publish(db: AsyncSession, service: PrecomputeService) -> None:
	"""Commit the request session, then mirror the committed job status to Redis."""
	await db.commit()
	await service.publish_status()


@router.post("/jobs", response_model=JobStartResponse, status_code=status.HTTP_201_CREATED)
async def start_job(
	payload: JobStartRequest | None = None,
	service: PrecomputeService = Depends(get_precompute_service),
	db: AsyncSession = Depends(get_db),
) -> JobStartResponse:
	try:
		result = await service.start((payload or JobStartRequest()).months)
		await _commit_and_publish(db, service)
	except Exception as exc:
		raise _map_error(exc) from exc
	return result


@router.post("/jobs/{job_id}/chunks", response_model=ChunkProgressResponse)
async def run_chunk(
	job_id: uuid.UUID,
	payload: ChunkRunRequest | None = None,
	service: PrecomputeService = Depends(get_precompute_service),
	db: AsyncSession = Depends(get_db),
) -> ChunkProgressResponse:
	try:
		result = await service.run_chunk(job_id, service.resolve_options(payload))
		await _commit_and_publish(db, service)
	except Exception as exc:
		raise _map_error(exc) from exc
	return result


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
	job_id: uuid.UUID,
	service: PrecomputeService = Depends(get_precompute_service),
	db: AsyncSession = Depends(get_db),
) -> JobStatusResponse:
	try:
		result = await service.get_job_status(job_id)
		await _commit_and_publish(db, service)
	except Exception as exc:
		raise _map_error(exc) from exc
	return result


@router.get("/jobs/{job_id}/suggestions", response_model=JobSuggestionsResponse)
async def list_job_suggestions(
	job_id: uuid.UUID,
	service: PrecomputeService = Depends(get_precompute_service),
) -> JobSuggestionsResponse:
	try:
		return await service.list_suggestions(job_id)
	except Exception as exc:
		raise _map_error(exc) from exc
