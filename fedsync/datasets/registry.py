"""Lookup table of constructed datasets."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from fedsync.core.config import Settings
from fedsync.datasets.base import Dataset, Phase


class UnknownDatasetError(ValueError):
    """Raised when a dataset name is not registered."""


class Registry:
    """Maps dataset names to implementations, preserving registration order."""

    def __init__(self, datasets: Optional[Sequence[Dataset]] = None):
        self._datasets: Dict[str, Dataset] = {}
        for dataset in datasets or []:
            self.register(dataset)

    def register(self, dataset: Dataset) -> None:
        if dataset.name in self._datasets:
            raise ValueError(f"dataset {dataset.name!r} is already registered")
        self._datasets[dataset.name] = dataset

    def get(self, name: str) -> Dataset:
        try:
            return self._datasets[name]
        except KeyError:
            raise UnknownDatasetError(f"dataset: unknown dataset {name!r}") from None

    def select(self, phase: Optional[Phase] = None, names: Optional[Sequence[str]] = None) -> List[Dataset]:
        """Return datasets matching an optional phase and/or explicit name list.

        Every explicit name must exist, even if the phase filter would drop it,
        so operator typos fail the whole run instead of being skipped.
        """
        if names:
            selected = [self.get(name) for name in names]
            if phase is not None:
                selected = [d for d in selected if d.phase == phase]
            return selected

        if phase is not None:
            return self.by_phase(phase)
        return self.all()

    def by_phase(self, phase: Phase) -> List[Dataset]:
        return [d for d in self._datasets.values() if d.phase == phase]

    def all(self) -> List[Dataset]:
        return list(self._datasets.values())

    def all_names(self) -> List[str]:
        return list(self._datasets)

    def __len__(self) -> int:
        return len(self._datasets)

    def __contains__(self, name: object) -> bool:
        return name in self._datasets


def build_registry(settings: Settings) -> Registry:
    """Registry with every shipped connector, in phase order."""
    from fedsync.datasets.cbp import CBP
    from fedsync.datasets.fred import FRED

    return Registry(
        [
            # Phase 1: market intelligence
            CBP(),
            # Phase 3: on-demand
            FRED(api_key=settings.FRED_API_KEY),
        ]
    )
