from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from app.schemas import CoordinatesModel, SignalCreate, SignalFilter, SignalUpdate
from datastore.signal_table import SignalTable
from models.records import Coordinates, SummaryRecord
from services.signals import SignalService

BASE = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def service() -> SignalService:
    ticks = count()
    return SignalService(
        table=SignalTable(name="signals"),
        clock=lambda: BASE + timedelta(seconds=next(ticks)),
    )


def _payload(device_id: str, minutes: int, length: int, volume: int, speed: float = 1.0) -> SignalCreate:
    return SignalCreate(
        device_id=device_id,
        time=BASE + timedelta(minutes=minutes),
        data_length=length,
        data_volume=volume,
        avg_speed=speed,
        min_coordinates=CoordinatesModel(x=0.0, y=0.0),
        max_coordinates=CoordinatesModel(x=1.0, y=1.0),
    )


def _seed(service: SignalService) -> None:
    service.create(_payload("dev-a", 0, 5, 100, speed=1.0))
    service.create(_payload("dev-b", 10, 8, 300, speed=2.0))
    service.create(_payload("dev-a", 20, 12, 500, speed=3.0))


def test_save_converts_summary_record(service: SignalService) -> None:
    summary = SummaryRecord(
        device_id="dev-1",
        time=BASE,
        sample_count=2,
        byte_volume=87,
        avg_speed=1.367702,
        min_coord=Coordinates(x=51.339764, y=12.339212),
        max_coord=Coordinates(x=51.339777, y=12.339223833),
    )

    stored = service.save(summary)

    assert stored.id
    assert stored.device_id == "dev-1"
    assert stored.data_length == 2
    assert stored.data_volume == 87
    assert stored.min_coordinates.x == 51.339764
    assert stored.max_coordinates.y == 12.339223833
    assert service.find_one(stored.id) == stored


def test_create_normalizes_naive_time_to_utc(service: SignalService) -> None:
    payload = _payload("dev-a", 0, 1, 1)
    payload.time = datetime(2024, 6, 1, 12, 0)

    stored = service.create(payload)

    assert stored.time == BASE
    assert stored.time.tzinfo is not None


def test_find_all_paginates_newest_first(service: SignalService) -> None:
    _seed(service)

    page = service.find_all(SignalFilter(limit=2))

    assert page.total == 3
    assert page.total_pages == 2
    assert page.has_next is True
    assert page.has_previous is False
    assert [signal.data_length for signal in page.data] == [12, 8]

    second = service.find_all(SignalFilter(limit=2, page=2))
    assert [signal.data_length for signal in second.data] == [5]
    assert second.has_next is False
    assert second.has_previous is True


def test_find_all_applies_filters(service: SignalService) -> None:
    _seed(service)

    by_device = service.find_all(SignalFilter(device_id="dev-a"))
    by_range = service.find_all(
        SignalFilter(
            start_date=BASE + timedelta(minutes=5),
            end_date=BASE + timedelta(minutes=15),
        )
    )
    by_size = service.find_all(SignalFilter(min_data_length=6, max_data_volume=400))

    assert {signal.device_id for signal in by_device.data} == {"dev-a"}
    assert by_device.total == 2
    assert [signal.device_id for signal in by_range.data] == ["dev-b"]
    assert [signal.data_length for signal in by_size.data] == [8]


def test_find_all_sorts_by_requested_field(service: SignalService) -> None:
    _seed(service)

    page = service.find_all(SignalFilter(sort_by="dataVolume", sort_order="asc"))

    assert [signal.data_volume for signal in page.data] == [100, 300, 500]


def test_find_all_rejects_unknown_sort_field(service: SignalService) -> None:
    with pytest.raises(ValueError):
        service.find_all(SignalFilter(sort_by="colour"))


def test_find_all_empty_store(service: SignalService) -> None:
    page = service.find_all(SignalFilter())

    assert page.total == 0
    assert page.total_pages == 0
    assert page.data == []
    assert page.has_next is False


def test_update_changes_only_given_fields(service: SignalService) -> None:
    stored = service.create(_payload("dev-a", 0, 5, 100))

    updated = service.update(stored.id, SignalUpdate(data_length=9))

    assert updated.data_length == 9
    assert updated.data_volume == 100
    assert updated.created_at == stored.created_at
    assert updated.updated_at > stored.updated_at
    assert service.find_one(stored.id).data_length == 9


def test_update_ignores_explicit_nulls(service: SignalService) -> None:
    stored = service.create(_payload("dev-a", 0, 5, 100))

    updated = service.update(
        stored.id, SignalUpdate.model_validate({"time": None, "dataLength": None, "avgSpeed": 4.5})
    )

    assert updated.time == stored.time
    assert updated.data_length == 5
    assert updated.avg_speed == 4.5


def test_missing_signal_raises_key_error(service: SignalService) -> None:
    with pytest.raises(KeyError):
        service.find_one("nope")
    with pytest.raises(KeyError):
        service.update("nope", SignalUpdate(data_length=1))
    with pytest.raises(KeyError):
        service.remove("nope")


def test_remove_deletes_signal(service: SignalService) -> None:
    stored = service.create(_payload("dev-a", 0, 5, 100))

    service.remove(stored.id)

    with pytest.raises(KeyError):
        service.find_one(stored.id)


def test_device_statistics(service: SignalService) -> None:
    _seed(service)

    stats = service.device_statistics("dev-a")

    assert stats.total_signals == 2
    assert stats.avg_data_length == pytest.approx(8.5)
    assert stats.avg_data_volume == pytest.approx(300.0)
    assert stats.avg_speed == pytest.approx(2.0)
    assert (stats.min_data_length, stats.max_data_length) == (5, 12)
    assert (stats.min_data_volume, stats.max_data_volume) == (100, 500)
    assert stats.first_signal == BASE
    assert stats.last_signal == BASE + timedelta(minutes=20)


def test_device_statistics_unknown_device(service: SignalService) -> None:
    with pytest.raises(KeyError):
        service.device_statistics("ghost")
