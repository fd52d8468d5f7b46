"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List


@dataclass(slots=True, frozen=True)
class Sample:
    """A single position/speed reading inside a device batch."""

    offset_ms: int
    x: float
    y: float
    speed: float

    def to_wire(self) -> list[Any]:
        return [self.offset_ms, [self.x, self.y, self.speed]]


@dataclass(slots=True)
class DeviceBatch:
    """One device's ordered samples plus the declared batch time."""

    time_ms: int
    samples: List[Sample] = field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return {"data": [sample.to_wire() for sample in self.samples], "time": self.time_ms}


@dataclass(slots=True, frozen=True)
class Coordinates:
    x: float
    y: float


@dataclass(slots=True, frozen=True)
class SummaryRecord:
    """Aggregated statistics derived from one device batch."""

    device_id: str
    time: datetime
    sample_count: int
    byte_volume: int
    avg_speed: float
    min_coord: Coordinates
    max_coord: Coordinates
