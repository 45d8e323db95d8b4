"""API dependencies"""

from typing import Generator

from sqlalchemy.orm import Session

from fedsync.core.config import settings
from fedsync.core.db import SessionLocal
from fedsync.services.sync_service import SyncService

_sync_service: SyncService | None = None


def get_db() -> Generator[Session, None, None]:
    """Database session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_sync_service() -> SyncService:
    """Process-wide sync service (registry is built once)."""
    global _sync_service
    if _sync_service is None:
        _sync_service = SyncService(SessionLocal, settings)
    return _sync_service
