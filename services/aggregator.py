"""Aggregation logic for x-ray device batches."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from models.records import Coordinates, Sample, SummaryRecord
from models.wire import ValidationFailure, is_number, is_sample, serialize


@dataclass
class _RunningStats:
    total_speed: float = 0.0
    min_x: float | None = None
    min_y: float | None = None
    max_x: float | None = None
    max_y: float | None = None

    def add(self, sample: Sample) -> None:
        self.total_speed += sample.speed
        # Each axis is tracked on its own; the extremes may come from different samples.
        if self.min_x is None or sample.x < self.min_x:
            self.min_x = sample.x
        if self.max_x is None or sample.x > self.max_x:
            self.max_x = sample.x
        if self.min_y is None or sample.y < self.min_y:
            self.min_y = sample.y
        if self.max_y is None or sample.y > self.max_y:
            self.max_y = sample.y

    def minimum(self) -> Coordinates:
        return Coordinates(x=self.min_x or 0.0, y=self.min_y or 0.0)

    def maximum(self) -> Coordinates:
        return Coordinates(x=self.max_x or 0.0, y=self.max_y or 0.0)


def _to_sample(point: Any) -> Optional[Sample]:
    if not is_sample(point):
        return None
    offset, (x, y, speed) = point
    return Sample(offset_ms=int(offset), x=float(x), y=float(y), speed=float(speed))


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, message: Mapping[str, Any]) -> List[SummaryRecord]:
        return [
            self.summarize(device_id, batch) for device_id, batch in message.items()
        ]

    def summarize(self, device_id: str, batch: Any) -> SummaryRecord:
        if not isinstance(batch, Mapping) or not isinstance(batch.get("data"), list):
            raise ValidationFailure(f"Invalid data format for device {device_id}")
        if not is_number(batch.get("time")):
            raise ValidationFailure(f"Invalid batch time for device {device_id}")

        points = batch["data"]
        # Counted before malformed samples are skipped below.
        sample_count = len(points)
        byte_volume = len(serialize(batch))

        stats = _RunningStats()
        for point in points:
            sample = _to_sample(point)
            if sample is None:
                continue
            stats.add(sample)

        avg_speed = stats.total_speed / sample_count if sample_count > 0 else 0.0

        return SummaryRecord(
            device_id=device_id,
            time=datetime.fromtimestamp(batch["time"] / 1000, tz=timezone.utc),
            sample_count=sample_count,
            byte_volume=byte_volume,
            avg_speed=avg_speed,
            min_coord=stats.minimum(),
            max_coord=stats.maximum(),
        )
