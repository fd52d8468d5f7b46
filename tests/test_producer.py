from __future__ import annotations

import json
import random
from typing import Any, List

from models.wire import serialize, validate
from services.producer import BATCH_DEVICE_IDS, DEFAULT_DEVICE_ID, ProducerService

NOW_MS = 1_700_000_000_000


class FakePublisher:
    def __init__(self, results: List[Any] | None = None) -> None:
        self.results = list(results or [])
        self.messages: List[Any] = []

    def publish(self, message, routing_key=None) -> bool:
        self.messages.append(message)
        result = self.results.pop(0) if self.results else True
        if isinstance(result, Exception):
            raise result
        return result


def _producer(publisher: FakePublisher, sleeps: List[float] | None = None, sample_path=None) -> ProducerService:
    recorded = sleeps if sleeps is not None else []
    return ProducerService(
        publisher,
        sample_path=sample_path,
        rng=random.Random(7),
        clock=lambda: NOW_MS,
        sleep=recorded.append,
    )


def test_default_sample_data_is_valid(tmp_path) -> None:
    producer = _producer(FakePublisher(), sample_path=tmp_path / "missing.json")

    assert list(producer.sample_data) == [DEFAULT_DEVICE_ID]
    assert producer.sample_data[DEFAULT_DEVICE_ID]["time"] == NOW_MS
    assert len(producer.sample_data[DEFAULT_DEVICE_ID]["data"]) == 3
    assert validate(producer.sample_data)


def test_sample_data_loaded_from_file(tmp_path) -> None:
    path = tmp_path / "sample.json"
    message = {"dev-9": {"data": [[0, [1.0, 2.0, 3.0]]], "time": 42}}
    path.write_text(json.dumps(message))

    producer = _producer(FakePublisher(), sample_path=path)

    assert producer.sample_data == message


def test_invalid_sample_file_falls_back_to_default(tmp_path) -> None:
    path = tmp_path / "sample.json"
    path.write_text(json.dumps({"dev-9": {"data": "oops", "time": 42}}))

    producer = _producer(FakePublisher(), sample_path=path)

    assert list(producer.sample_data) == [DEFAULT_DEVICE_ID]


def test_send_sample_data_reports_size() -> None:
    publisher = FakePublisher([True])
    producer = _producer(publisher)

    result = producer.send_sample_data()

    assert result.success is True
    assert result.message == "Sample x-ray data sent successfully"
    assert result.data_size == len(serialize(producer.sample_data))
    assert publisher.messages == [producer.sample_data]


def test_send_sample_data_failure_and_error() -> None:
    producer = _producer(FakePublisher([False, RuntimeError("boom")]))

    failed = producer.send_sample_data()
    errored = producer.send_sample_data()

    assert (failed.success, failed.message, failed.data_size) == (False, "Failed to send sample data", 0)
    assert (errored.success, errored.message, errored.data_size) == (False, "Error: boom", 0)


def test_send_custom_data_validates_before_publishing() -> None:
    publisher = FakePublisher()
    producer = _producer(publisher)

    result = producer.send_custom_data({"dev-1": {"data": [[1, [1, 2]]], "time": 1}})

    assert result.success is False
    assert result.message == "Invalid data format: expected XRayMessage structure"
    assert publisher.messages == []


def test_send_custom_data_publishes_valid_message() -> None:
    publisher = FakePublisher([True, False])
    producer = _producer(publisher)
    message = {"dev-1": {"data": [[1, [1.0, 2.0, 3.0]]], "time": 1}}

    sent = producer.send_custom_data(message)
    refused = producer.send_custom_data(message)

    assert (sent.success, sent.message) == (True, "Custom data sent successfully")
    assert (refused.success, refused.message) == (False, "Failed to send custom data")


def test_send_batch_counts_failures_and_sleeps_between_items() -> None:
    sleeps: List[float] = []
    publisher = FakePublisher([True, False, RuntimeError("channel closed"), True])
    producer = _producer(publisher, sleeps=sleeps)

    result = producer.send_batch_data(count=4, delay_ms=250)

    assert (result.success, result.sent, result.failed) == (False, 2, 2)
    assert sleeps == [0.25, 0.25, 0.25]
    assert len(publisher.messages) == 4


def test_send_batch_without_delay_never_sleeps() -> None:
    sleeps: List[float] = []
    producer = _producer(FakePublisher(), sleeps=sleeps)

    result = producer.send_batch_data(count=3, delay_ms=0)

    assert (result.success, result.sent, result.failed) == (True, 3, 0)
    assert sleeps == []


def test_generate_message_rotates_devices() -> None:
    producer = _producer(FakePublisher())

    message = producer.generate_message(5)

    [(device_id, batch)] = message.items()
    assert device_id == BATCH_DEVICE_IDS[1]
    assert batch["time"] == NOW_MS - 5 * 60_000
    assert 5 <= len(batch["data"]) <= 14
    assert [point[0] for point in batch["data"]] == [index * 1000 for index in range(len(batch["data"]))]
    assert all(1 <= point[1][2] <= 3 for point in batch["data"])
    assert validate(message)
