"""
Series containers passed in and out of the indicator engine.

Quote history arrives newest-first (as the store returns it); indicator
sequences leave newest-first, each trimmed to its own valid length.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np

from stockstat.schemas.statistics import INDICATOR_FIELDS, IndicatorValues


@dataclass
class PriceHistory:
    """Close/min/max/volume arrays, index 0 = newest day."""

    closes: np.ndarray
    mins: np.ndarray
    maxs: np.ndarray
    volumes: np.ndarray

    def __post_init__(self):
        self.closes = np.asarray(self.closes, dtype=float)
        self.mins = np.asarray(self.mins, dtype=float)
        self.maxs = np.asarray(self.maxs, dtype=float)
        self.volumes = np.asarray(self.volumes, dtype=float)
        lengths = {len(self.closes), len(self.mins), len(self.maxs), len(self.volumes)}
        if len(lengths) != 1:
            raise ValueError(f"Price arrays differ in length: {sorted(lengths)}")

    @classmethod
    def from_quotes(cls, quotes: Iterable) -> "PriceHistory":
        """Build from newest-first quote objects (close/min/max/volume attributes)."""
        quotes = list(quotes)
        return cls(
            closes=[q.close for q in quotes],
            mins=[q.min for q in quotes],
            maxs=[q.max for q in quotes],
            volumes=[q.volume for q in quotes],
        )

    def __len__(self) -> int:
        return len(self.closes)

    def newest(self, size: int) -> "PriceHistory":
        """The newest `size` days."""
        return PriceHistory(
            self.closes[:size], self.mins[:size], self.maxs[:size], self.volumes[:size]
        )

    def chronological(self) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Arrays reversed to oldest-first: (closes, mins, maxs, volumes)."""
        return self.closes[::-1], self.mins[::-1], self.maxs[::-1], self.volumes[::-1]


@dataclass
class IndicatorHistory:
    """
    Per-indicator sequences over one quote history.

    `series[name][offset]` is the value for the day `offset` days before the
    newest one; a sequence shorter than the history simply does not cover the
    oldest days.
    """

    size: int
    series: dict[str, np.ndarray] = field(default_factory=dict)

    def __len__(self) -> int:
        return self.size

    def coverage(self, name: str) -> int:
        """Number of newest days covered by an indicator."""
        values = self.series.get(name)
        return 0 if values is None else len(values)

    def value_at(self, name: str, offset: int) -> Optional[float]:
        values = self.series.get(name)
        if values is None or offset >= len(values):
            return None
        return float(values[offset])

    def values_at(self, offset: int) -> IndicatorValues:
        """Merge every indicator that covers `offset` into one row."""
        if not 0 <= offset < self.size:
            raise IndexError(f"Offset {offset} outside history of {self.size} days")
        return IndicatorValues(
            **{name: self.value_at(name, offset) for name in INDICATOR_FIELDS}
        )

    def latest(self) -> IndicatorValues:
        return self.values_at(0)
