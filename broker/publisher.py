"""Publishes x-ray messages to the topic exchange."""

from __future__ import annotations

import logging
from typing import Any, Optional

import pika
from pika.exceptions import AMQPError

from broker.connection import BrokerTopology, ConnectionManager
from broker.errors import BrokerError
from models.wire import serialize, validate

logger = logging.getLogger(__name__)

_PROPERTIES = pika.BasicProperties(
    content_type="application/json",
    delivery_mode=pika.DeliveryMode.Persistent,
)


class Publisher:
    """Sends validated messages through the manager's live channel.

    :meth:`publish` never raises: every failure becomes ``False`` plus a log
    line, so batch senders can count successes without exception handling.
    """

    def __init__(self, manager: ConnectionManager, topology: BrokerTopology) -> None:
        self._manager = manager
        self._topology = topology

    def publish(self, message: Any, routing_key: Optional[str] = None) -> bool:
        if not validate(message):
            logger.error("Invalid message format: not an x-ray message")
            return False

        key = routing_key or self._topology.routing_key
        body = serialize(message)

        def send(channel: Any) -> None:
            # With publisher confirms on, unroutable or nacked messages raise here.
            channel.basic_publish(
                exchange=self._topology.exchange,
                routing_key=key,
                body=body,
                properties=_PROPERTIES,
                mandatory=True,
            )

        try:
            self._manager.run_on_channel(send)
        except (BrokerError, AMQPError) as exc:
            logger.warning(
                "Failed to publish message",
                extra={"routing_key": key, "reason": str(exc) or type(exc).__name__},
            )
            return False
        except Exception:  # noqa: BLE001 - publish failures are reported as False
            logger.exception("Unexpected error while publishing", extra={"routing_key": key})
            return False

        logger.debug(
            "Published x-ray message",
            extra={"routing_key": key, "exchange": self._topology.exchange},
        )
        return True
