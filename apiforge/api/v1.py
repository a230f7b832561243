"""
Version 1 of the REST API.

Droid lookups use the distributed cache (cache-aside, keyed by id) and
responses carry the ``Default`` HTTP cache profile.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel

from apiforge.caching import DistributedCache, cache_profile
from apiforge.config import options_dependency
from apiforge.constants import HeaderName
from apiforge.models import DroidRecord
from apiforge.observability.logging import get_logger
from apiforge.options import CacheProfileOptions
from apiforge.repositories import DroidRepository

logger = get_logger(__name__)

API_VERSION = "1.0"
CACHE_TTL_SECONDS = 60

router = APIRouter(tags=["droids"])


class DroidModel(BaseModel):
    id: UUID
    name: str
    primary_function: Optional[str] = None
    charge_period: timedelta
    manufactured: Optional[datetime] = None
    appears_in: List[str] = []

    @classmethod
    def from_record(cls, record: DroidRecord) -> "DroidModel":
        return cls(
            id=record.id,
            name=record.name,
            primary_function=record.primary_function,
            charge_period=record.charge_period,
            manufactured=record.manufactured,
            appears_in=[episode.value for episode in record.appears_in],
        )


def api_version_header(response: Response) -> None:
    """Report the supported API versions on every versioned response."""
    response.headers[HeaderName.API_SUPPORTED_VERSIONS] = API_VERSION


def get_droid_repository(request: Request) -> DroidRepository:
    return request.app.state.droids


def get_distributed_cache(request: Request) -> DistributedCache:
    return request.app.state.backends.cache


@router.get(
    "/droids",
    response_model=List[DroidModel],
    dependencies=[Depends(cache_profile("Default"))],
)
async def list_droids(
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    droids: DroidRepository = Depends(get_droid_repository),
) -> List[DroidModel]:
    records = await droids.list()
    return [DroidModel.from_record(record) for record in records[skip:skip + limit]]


@router.get(
    "/droids/{droid_id}",
    response_model=DroidModel,
    dependencies=[Depends(cache_profile("Default"))],
)
async def get_droid(
    droid_id: UUID,
    droids: DroidRepository = Depends(get_droid_repository),
    cache: DistributedCache = Depends(get_distributed_cache),
) -> DroidModel:
    key = f"droid:{droid_id}"
    cached = await cache.get(key)
    if cached is not None:
        logger.debug("droid_cache_hit", id=str(droid_id))
        return DroidModel.model_validate_json(cached)

    record = await droids.get(droid_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Droid not found")

    model = DroidModel.from_record(record)
    await cache.set(key, model.model_dump_json(), ttl_seconds=CACHE_TTL_SECONDS)
    return model


@router.get("/cache-profiles", dependencies=[Depends(cache_profile("NoCache"))])
async def list_cache_profiles(
    profiles: CacheProfileOptions = Depends(options_dependency(CacheProfileOptions)),
) -> List[str]:
    return profiles.names


__all__ = ["API_VERSION", "DroidModel", "api_version_header", "router"]
