from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    database: str
    last_sync_status: str | None


class SyncEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    dataset: str
    status: str
    rows_synced: int
    error: str | None = None
    metadata: dict[str, Any] | None = None
    started_at: datetime
    completed_at: datetime | None
    duration_seconds: float | None = None


class DatasetOut(BaseModel):
    name: str
    table: str
    phase: str
    cadence: str
    last_success: Optional[datetime] = None


class SyncRunRequest(BaseModel):
    phase: Optional[str] = None
    datasets: list[str] = []
    force: bool = False
    full: bool = False


class SyncRunResponse(BaseModel):
    synced: int
    skipped: int
    failed: int
