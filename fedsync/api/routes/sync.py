"""Sync routes - trigger engine runs."""

from fastapi import APIRouter, Depends, HTTPException

from fedsync.api.deps import get_sync_service
from fedsync.core.logging import get_logger
from fedsync.datasets.base import parse_phase
from fedsync.datasets.engine import RunOpts
from fedsync.datasets.registry import UnknownDatasetError
from fedsync.schemas.api import SyncRunRequest, SyncRunResponse
from fedsync.services.sync_service import SyncService

router = APIRouter(prefix="/sync", tags=["sync"])
log = get_logger("sync_routes")


@router.post("/run", response_model=SyncRunResponse)
async def trigger_sync(
    request: SyncRunRequest,
    service: SyncService = Depends(get_sync_service),
):
    """
    Run the sync engine synchronously and return counts.

    Only datasets that are due run unless ``force`` is set. Individual dataset
    failures are reported in ``failed``; the request still succeeds.
    """
    try:
        phase = parse_phase(request.phase) if request.phase else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    opts = RunOpts(phase=phase, datasets=request.datasets, force=request.force, full=request.full)
    log.info(f"Sync triggered via API: {opts}")

    try:
        summary = await service.run(opts)
    except UnknownDatasetError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return SyncRunResponse(synced=summary.synced, skipped=summary.skipped, failed=summary.failed)
