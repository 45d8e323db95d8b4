from fedsync.models.base import Base
from fedsync.models.sync_log import SyncRun
from fedsync.models.fred import FredObservation
from fedsync.models.cbp import CBPRecord

__all__ = [
    "Base",
    "SyncRun",
    "FredObservation",
    "CBPRecord",
]
