"""Signal persistence, querying and per-device statistics."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Optional
from uuid import uuid4

from app.schemas import (
    CoordinatesModel,
    DeviceStats,
    PaginatedSignals,
    SignalCreate,
    SignalFilter,
    SignalUpdate,
    StoredSignal,
)
from datastore.signal_table import SignalTable, build_default_table
from models.records import SummaryRecord

logger = logging.getLogger(__name__)

_SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "time": "time",
    "deviceId": "device_id",
    "dataLength": "data_length",
    "dataVolume": "data_volume",
    "avgSpeed": "avg_speed",
}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SignalService:
    """Stores summary records and answers the HTTP layer's queries."""

    def __init__(
        self,
        table: SignalTable,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.table = table
        self._clock = clock

    def save(self, summary: SummaryRecord) -> StoredSignal:
        """Persist one aggregated record; failures propagate to the caller."""
        stored = self.create(
            SignalCreate(
                device_id=summary.device_id,
                time=summary.time,
                data_length=summary.sample_count,
                data_volume=summary.byte_volume,
                avg_speed=summary.avg_speed,
                min_coordinates=CoordinatesModel(x=summary.min_coord.x, y=summary.min_coord.y),
                max_coordinates=CoordinatesModel(x=summary.max_coord.x, y=summary.max_coord.y),
            )
        )
        logger.debug(
            "Saved signal",
            extra={"signal_id": stored.id, "device_id": stored.device_id},
        )
        return stored

    def create(self, payload: SignalCreate) -> StoredSignal:
        now = self._clock()
        fields = payload.model_dump()
        fields["time"] = _as_utc(fields["time"])
        signal = StoredSignal(id=uuid4().hex, created_at=now, updated_at=now, **fields)
        self.table.put_item(signal)
        return signal

    def find_all(self, filters: SignalFilter) -> PaginatedSignals:
        sort_field = _SORT_FIELDS.get(filters.sort_by)
        if sort_field is None:
            raise ValueError(
                f"Unsupported sortBy {filters.sort_by!r}; expected one of {', '.join(_SORT_FIELDS)}."
            )

        matches = [signal for signal in self.table.scan() if self._matches(signal, filters)]
        matches.sort(
            key=lambda signal: getattr(signal, sort_field),
            reverse=filters.sort_order == "desc",
        )

        total = len(matches)
        start = (filters.page - 1) * filters.limit
        total_pages = math.ceil(total / filters.limit)
        return PaginatedSignals(
            data=matches[start : start + filters.limit],
            total=total,
            page=filters.page,
            limit=filters.limit,
            total_pages=total_pages,
            has_next=filters.page < total_pages,
            has_previous=filters.page > 1,
        )

    def find_one(self, signal_id: str) -> StoredSignal:
        signal = self.table.get_item(signal_id)
        if signal is None:
            raise KeyError(f"Signal with ID {signal_id} not found")
        return signal

    def update(self, signal_id: str, payload: SignalUpdate) -> StoredSignal:
        existing = self.find_one(signal_id)
        # An explicit null leaves the stored value unchanged.
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        if changes.get("time") is not None:
            changes["time"] = _as_utc(changes["time"])
        updated = StoredSignal.model_validate(
            {**existing.model_dump(), **changes, "updated_at": self._clock()}
        )
        self.table.put_item(updated)
        return updated

    def remove(self, signal_id: str) -> None:
        if not self.table.delete_item(signal_id):
            raise KeyError(f"Signal with ID {signal_id} not found")

    def device_statistics(self, device_id: str) -> DeviceStats:
        signals = [signal for signal in self.table.scan() if signal.device_id == device_id]
        if not signals:
            raise KeyError(f"No statistics found for device {device_id}")

        lengths = [signal.data_length for signal in signals]
        volumes = [signal.data_volume for signal in signals]
        times = [_as_utc(signal.time) for signal in signals]
        count = len(signals)
        return DeviceStats(
            device_id=device_id,
            total_signals=count,
            avg_data_length=sum(lengths) / count,
            avg_data_volume=sum(volumes) / count,
            avg_speed=sum(signal.avg_speed for signal in signals) / count,
            min_data_length=min(lengths),
            max_data_length=max(lengths),
            min_data_volume=min(volumes),
            max_data_volume=max(volumes),
            first_signal=min(times),
            last_signal=max(times),
        )

    @staticmethod
    def _matches(signal: StoredSignal, filters: SignalFilter) -> bool:
        if filters.device_id and signal.device_id != filters.device_id:
            return False
        signal_time = _as_utc(signal.time)
        if filters.start_date and signal_time < _as_utc(filters.start_date):
            return False
        if filters.end_date and signal_time > _as_utc(filters.end_date):
            return False
        if not _within(signal.data_length, filters.min_data_length, filters.max_data_length):
            return False
        return _within(signal.data_volume, filters.min_data_volume, filters.max_data_volume)


def _within(value: int, lower: Optional[int], upper: Optional[int]) -> bool:
    if lower is not None and value < lower:
        return False
    if upper is not None and value > upper:
        return False
    return True


@lru_cache
def build_default_signal_service() -> SignalService:
    """Factory that wires the signal service with the default table."""
    return SignalService(table=build_default_table())
