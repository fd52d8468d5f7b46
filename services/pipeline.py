"""Wires broker, consumer, producer and store into one runnable unit."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from broker.connection import (
    BrokerTopology,
    ConnectionFactory,
    ConnectionManager,
    ConnectionState,
    build_connection_factory,
)
from broker.consumer import ConsumerLoop
from broker.publisher import Publisher
from broker.retry import RetryPolicy
from broker.startup import StartupOrchestrator
from services.aggregator import Aggregator
from services.ingestion import IngestionService
from services.producer import ProducerService
from services.signals import SignalService, build_default_signal_service
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


class Pipeline:
    """Owns the broker components for the lifetime of the process."""

    def __init__(
        self,
        settings: Settings,
        signals: SignalService,
        connection_factory: Optional[ConnectionFactory] = None,
    ) -> None:
        self.topology = BrokerTopology(
            exchange=settings.exchange_name,
            queue=settings.queue_name,
            routing_key=settings.routing_key,
        )
        factory = connection_factory or build_connection_factory(
            settings.rabbitmq_url, heartbeat=settings.heartbeat_seconds
        )
        self.manager = ConnectionManager(
            factory,
            self.topology,
            retry_policy=RetryPolicy.fixed(settings.reconnect_seconds),
        )
        self.publisher = Publisher(self.manager, self.topology)
        self.consumer = ConsumerLoop(self.manager, self.topology)
        self.ingestion = IngestionService(Aggregator(), signals)
        self.producer = ProducerService(
            self.publisher, sample_path=Path(settings.sample_data_path)
        )
        self.orchestrator = StartupOrchestrator(
            self.consumer,
            self.ingestion.handle,
            grace_period=settings.consumer_start_delay,
            retry_policy=RetryPolicy.fixed(settings.consumer_retry_seconds),
        )
        self._consumer_enabled = settings.consumer_enabled

    @property
    def broker_state(self) -> ConnectionState:
        return self.manager.state

    def start(self) -> None:
        self.manager.start()
        if self._consumer_enabled:
            self.orchestrator.start()
        else:
            logger.info("Consumer disabled; running as producer only")

    def shutdown(self) -> None:
        """Stop consuming, then close the broker connection."""
        self.orchestrator.stop()
        self.consumer.stop()
        self.manager.close()


@lru_cache
def build_default_pipeline() -> Pipeline:
    """Factory that wires the pipeline from environment settings."""
    return Pipeline(settings=get_settings(), signals=build_default_signal_service())
