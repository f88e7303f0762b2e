"""Averaging logic for batches of glucose readings."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from models.records import GlucoseReading, TargetRange


@dataclass
class AverageAccumulator:
    """Bounded buffer of current readings; never holds more than ``amount``."""

    amount: int
    dedupe: bool = False
    readings: List[GlucoseReading] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.amount < 1:
            raise ValueError("amount must be at least 1")

    def __len__(self) -> int:
        return len(self.readings)

    def add(self, reading: GlucoseReading) -> Optional[List[GlucoseReading]]:
        """Append ``reading``; return the full batch and reset once ``amount`` is reached."""
        if self.dedupe and any(r.timestamp == reading.timestamp for r in self.readings):
            return None
        self.readings.append(reading)
        if len(self.readings) < self.amount:
            return None
        batch, self.readings = self.readings, []
        return batch


class Aggregator:
    """Pure averaging component that can be unit tested in isolation."""

    def aggregate(
        self, readings: Sequence[GlucoseReading], target_range: TargetRange
    ) -> GlucoseReading:
        """Average the values; trend and timestamp come from the most recent reading."""
        if not readings:
            raise ValueError("Cannot average an empty batch of readings.")

        mean_value = math.fsum(reading.value for reading in readings) / len(readings)
        latest = readings[-1]
        return GlucoseReading(
            value=mean_value,
            trend=latest.trend,
            timestamp=latest.timestamp,
            is_high=mean_value > target_range.high,
            is_low=mean_value < target_range.low,
        )
