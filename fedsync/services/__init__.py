# Services package
from fedsync.services.sync_log import SyncEntry, SyncLog, SyncLogError

__all__ = [
    "SyncEntry",
    "SyncLog",
    "SyncLogError",
]
