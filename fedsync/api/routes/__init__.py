"""API route modules."""

from fedsync.api.routes import health, stats, sync

__all__ = ["health", "stats", "sync"]
