"""Dataset contract, scheduling predicates and the registry."""

from fedsync.datasets.base import Cadence, Dataset, Phase, SyncResult, parse_phase
from fedsync.datasets.registry import Registry, UnknownDatasetError

__all__ = [
    "Cadence",
    "Dataset",
    "Phase",
    "SyncResult",
    "parse_phase",
    "Registry",
    "UnknownDatasetError",
]
