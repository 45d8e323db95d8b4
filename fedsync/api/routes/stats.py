"""Stats routes - sync log observability."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from fedsync.api.deps import get_sync_service
from fedsync.schemas.api import DatasetOut, SyncEntryOut
from fedsync.services.sync_service import SyncService

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=list[SyncEntryOut])
async def get_sync_stats(
    dataset: Optional[str] = Query(None, description="Filter by dataset name"),
    status: Optional[str] = Query(None, description="Filter by status (running, succeeded, failed)"),
    limit: int = Query(20, ge=1, le=200, description="Number of runs to return"),
    service: SyncService = Depends(get_sync_service),
):
    """
    Get recent sync attempts, newest first.

    Shows rows synced, duration, status, and error messages.
    """
    entries = await service.sync_log.list_entries(dataset=dataset, status=status, limit=limit)
    return [
        SyncEntryOut(**entry.model_dump(), duration_seconds=entry.duration_seconds)
        for entry in entries
    ]


@router.get("/datasets", response_model=list[DatasetOut])
async def get_datasets(service: SyncService = Depends(get_sync_service)):
    """
    List registered datasets with phase, cadence and last successful sync.
    """
    return [DatasetOut(**item) for item in await service.describe_datasets()]
