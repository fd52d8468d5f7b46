"""Synthesizes x-ray telemetry and publishes it for testing and load generation."""

from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from broker.publisher import Publisher
from models.records import DeviceBatch, Sample
from models.wire import WireMessage, serialize, validate

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_ID = "66bb584d4ae73e488c30a072"
BATCH_DEVICE_IDS = (
    "66bb584d4ae73e488c30a072",
    "66bb584d4ae73e488c30a073",
    "66bb584d4ae73e488c30a074",
    "66bb584d4ae73e488c30a075",
)
BASE_X = 51.339764
BASE_Y = 12.339223833333334

_DEFAULT_SAMPLES = (
    Sample(offset_ms=762, x=51.339764, y=12.339223833333334, speed=1.2038000000000002),
    Sample(offset_ms=1766, x=51.33977733333333, y=12.339211833333334, speed=1.531604),
    Sample(offset_ms=2763, x=51.339782, y=12.339196166666667, speed=2.13906),
)


@dataclass(frozen=True)
class SendResult:
    success: bool
    message: str
    data_size: Optional[int] = None


@dataclass(frozen=True)
class BatchResult:
    success: bool
    sent: int
    failed: int


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProducerService:
    """Publishes sample, custom and generated batch messages.

    Publisher exceptions never reach callers; they are folded into failed
    results so HTTP handlers can report them as structured data.
    """

    def __init__(
        self,
        publisher: Publisher,
        sample_path: Optional[Path] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = _now_ms,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.publisher = publisher
        self._rng = rng or random.Random()
        self._clock = clock
        self._sleep = sleep
        self.sample_data = self._load_sample_data(sample_path)

    def send_sample_data(self) -> SendResult:
        try:
            success = self.publisher.publish(self.sample_data)
        except Exception as exc:  # noqa: BLE001 - reported to the caller
            logger.exception("Error sending sample data")
            return SendResult(success=False, message=f"Error: {exc}", data_size=0)

        if not success:
            return SendResult(success=False, message="Failed to send sample data", data_size=0)
        return SendResult(
            success=True,
            message="Sample x-ray data sent successfully",
            data_size=len(serialize(self.sample_data)),
        )

    def send_custom_data(self, data: Any) -> SendResult:
        if not validate(data):
            return SendResult(
                success=False,
                message="Invalid data format: expected XRayMessage structure",
            )

        try:
            success = self.publisher.publish(data)
        except Exception as exc:  # noqa: BLE001 - reported to the caller
            logger.exception("Error sending custom data")
            return SendResult(success=False, message=f"Error: {exc}")

        return SendResult(
            success=success,
            message="Custom data sent successfully" if success else "Failed to send custom data",
        )

    def send_batch_data(self, count: int = 10, delay_ms: int = 1000) -> BatchResult:
        sent = 0
        failed = 0
        for index in range(count):
            message = self.generate_message(index)
            try:
                if self.publisher.publish(message):
                    sent += 1
                else:
                    failed += 1
            except Exception:  # noqa: BLE001 - counted as a failure
                logger.exception("Error sending batch item %d", index + 1)
                failed += 1

            if index < count - 1 and delay_ms > 0:
                self._sleep(delay_ms / 1000)

        logger.info("Batch send finished: %d sent, %d failed", sent, failed)
        return BatchResult(success=failed == 0, sent=sent, failed=failed)

    def generate_message(self, index: int) -> WireMessage:
        """Build a random batch for one of the rotating test devices."""
        device_id = BATCH_DEVICE_IDS[index % len(BATCH_DEVICE_IDS)]
        batch = DeviceBatch(time_ms=self._clock() - index * 60_000)
        for position in range(self._rng.randint(5, 14)):
            batch.samples.append(
                Sample(
                    offset_ms=position * 1000,
                    x=BASE_X + (self._rng.random() - 0.5) * 0.001,
                    y=BASE_Y + (self._rng.random() - 0.5) * 0.001,
                    speed=1 + self._rng.random() * 2,
                )
            )
        return {device_id: batch.to_wire()}

    def _default_sample_data(self) -> WireMessage:
        batch = DeviceBatch(time_ms=self._clock(), samples=list(_DEFAULT_SAMPLES))
        return {DEFAULT_DEVICE_ID: batch.to_wire()}

    def _load_sample_data(self, sample_path: Optional[Path]) -> WireMessage:
        if sample_path is None or not sample_path.exists():
            logger.warning("Sample data file not found, using default data")
            return self._default_sample_data()

        try:
            data = json.loads(sample_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Error loading sample data", extra={"reason": str(exc)})
            return self._default_sample_data()

        if not validate(data):
            logger.error("Invalid sample data format", extra={"reason": str(sample_path)})
            return self._default_sample_data()

        logger.info("Sample x-ray data loaded successfully")
        return data
