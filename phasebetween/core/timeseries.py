"""
Time series key layout shared by all series providers.
"""

from dataclasses import dataclass
from typing import List

from phasebetween.config.settings import TimeSeriesConfig


@dataclass(frozen=True)
class Sample:
    """One key of a time series: its position and offset from "now" in seconds."""
    index: int
    timestamp: float


class TimeSeries:
    """
    Fixed set of past and future keys around a pivot.

    Keys before the pivot cover [-past_window, 0), the pivot is 0 and keys
    after it cover (0, future_window].

    Example:
        >>> series = TimeSeries(past_keys=2, future_keys=2, past_window=1.0, future_window=1.0)
        >>> [s.timestamp for s in series.samples]
        [-1.0, -0.5, 0.0, 0.5, 1.0]
    """

    def __init__(
        self,
        past_keys: int = 6,
        future_keys: int = 6,
        past_window: float = 1.0,
        future_window: float = 1.0,
    ):
        self.past_keys = past_keys
        self.future_keys = future_keys
        self.past_window = past_window
        self.future_window = future_window
        self.samples: List[Sample] = self._build_samples()

    @classmethod
    def from_config(cls, config: TimeSeriesConfig) -> "TimeSeries":
        return cls(
            past_keys=config.past_keys,
            future_keys=config.future_keys,
            past_window=config.past_window,
            future_window=config.future_window,
        )

    def _build_samples(self) -> List[Sample]:
        samples = []
        for i in range(self.past_keys):
            timestamp = -self.past_window + i * self.past_window / self.past_keys
            samples.append(Sample(i, timestamp))
        samples.append(Sample(self.past_keys, 0.0))
        for i in range(1, self.future_keys + 1):
            timestamp = i * self.future_window / self.future_keys
            samples.append(Sample(self.past_keys + i, timestamp))
        return samples

    @property
    def pivot(self) -> int:
        """Index of the key at time zero."""
        return self.past_keys

    def __len__(self) -> int:
        return len(self.samples)
