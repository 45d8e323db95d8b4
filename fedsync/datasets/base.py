"""Dataset contract: the capability interface every connector implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

if TYPE_CHECKING:
    from loguru import Logger

    from fedsync.core.fetcher import HTTPFetcher


class Phase(IntEnum):
    """Pipeline phase used to group datasets for selective runs."""

    PHASE_1 = 1  # Market intelligence (Census, BLS)
    PHASE_1B = 2  # Buyer intelligence (SEC/EDGAR)
    PHASE_2 = 3  # Extended intelligence (FINRA, OSHA, EPA)
    PHASE_3 = 4  # On-demand (XBRL, FRED)

    def __str__(self) -> str:
        return _PHASE_LABELS[self]


_PHASE_LABELS = {
    Phase.PHASE_1: "1",
    Phase.PHASE_1B: "1b",
    Phase.PHASE_2: "2",
    Phase.PHASE_3: "3",
}


def parse_phase(value: str) -> Phase:
    """Convert "1", "1b", "2" or "3" into a Phase."""
    label = value.strip().lower()
    for phase, phase_label in _PHASE_LABELS.items():
        if label == phase_label:
            return phase
    raise ValueError(f"unknown phase: {value!r} (valid: 1, 1b, 2, 3)")


class Cadence(str, Enum):
    """How often a dataset is refreshed upstream. Informational only."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class SyncResult(BaseModel):
    rows_synced: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Dataset(ABC):
    """One independently schedulable ingestion connector.

    Subclasses declare ``name`` (unique sync-log key), ``table``, ``phase``
    and ``cadence`` as class attributes and implement the two methods below.
    """

    name: str
    table: str
    phase: Phase
    cadence: Cadence

    @abstractmethod
    def should_run(self, now: datetime, last_sync: Optional[datetime]) -> bool:
        """Decide whether a sync is due; ``last_sync`` is None if never synced."""

    @abstractmethod
    async def sync(
        self,
        pool: sessionmaker,
        fetcher: "HTTPFetcher",
        temp_dir: Path,
        *,
        full: bool = False,
        log: "Logger",
    ) -> SyncResult:
        """Download, parse and load the dataset."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} phase={self.phase}>"
