"""Turns validated x-ray messages into stored signals."""

from __future__ import annotations

import logging
import time
from typing import List

from app.schemas import StoredSignal
from models.wire import WireMessage
from services.aggregator import Aggregator
from services.signals import SignalService

logger = logging.getLogger(__name__)


class IngestionService:
    """Coordinates aggregation and persistence for one consumed message."""

    def __init__(self, aggregator: Aggregator, signals: SignalService) -> None:
        self.aggregator = aggregator
        self.signals = signals

    def handle(self, message: WireMessage) -> List[StoredSignal]:
        """Aggregate ``message`` and save one signal per device entry.

        Any exception (aggregation or store) propagates so the consumer can
        reject the delivery. Signals saved before a failing one are kept.
        """
        start_time = time.perf_counter()
        summaries = self.aggregator.aggregate(message)
        if not summaries:
            logger.warning("No signals were processed from the message")
            return []

        stored: List[StoredSignal] = []
        for summary in summaries:
            stored.append(self.signals.save(summary))
            logger.info(
                "Processed device batch",
                extra={
                    "device_id": summary.device_id,
                    "sample_count": summary.sample_count,
                    "signal_id": stored[-1].id,
                },
            )

        processing_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Successfully processed and saved %d signals in %d ms",
            len(stored),
            processing_ms,
        )
        return stored
