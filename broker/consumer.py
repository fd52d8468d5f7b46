"""Consumes x-ray deliveries and settles each one exactly once."""

from __future__ import annotations

import functools
import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from pika.exceptions import AMQPError

from broker.connection import BrokerTopology, ChannelHandle, ConnectionManager
from broker.errors import BrokerError, StaleChannelError
from models.wire import DecodeError, ValidationFailure, WireMessage, parse_message

logger = logging.getLogger(__name__)

MessageHandler = Callable[[WireMessage], Any]

_STOP = object()
_JOIN_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class Delivery:
    """One inbound broker message, tagged with the channel that received it."""

    delivery_tag: int
    body: bytes
    routing_key: str
    redelivered: bool
    generation: int


class DeliveryOutcome(str, Enum):
    acknowledged = "acknowledged"
    rejected = "rejected"


class ConsumerLoop:
    """Turns the broker's push callbacks into a blocking stream of deliveries.

    The pika callback only enqueues; a single worker thread iterates
    :meth:`deliveries` and runs the handler, so handlers execute sequentially
    while the broker enforces the prefetch limit on unacknowledged messages.
    """

    def __init__(self, manager: ConnectionManager, topology: BrokerTopology) -> None:
        self._manager = manager
        self._topology = topology
        self._deliveries: "queue.Queue[Any]" = queue.Queue()
        self._handler: Optional[MessageHandler] = None
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def attached(self) -> bool:
        with self._lock:
            return self._handler is not None

    def attach(self, handler: MessageHandler) -> None:
        """Subscribe to the queue and start processing deliveries with ``handler``.

        Raises :class:`broker.errors.BrokerUnavailable` (or a pika error) when
        the subscription cannot be set up; nothing is registered in that case.
        """
        with self._lock:
            if self._handler is not None:
                raise RuntimeError("Consumer is already attached.")

        self._manager.add_setup(self._subscribe)

        with self._lock:
            self._handler = handler
            self._worker = threading.Thread(
                target=self._run, name="xray-consumer", daemon=True
            )
            self._worker.start()
        logger.info("RabbitMQ consumer started", extra={"queue": self._topology.queue})

    def deliveries(self) -> Iterator[Delivery]:
        """Yield deliveries as they arrive until :meth:`stop` is called."""
        while True:
            item = self._deliveries.get()
            if item is _STOP:
                return
            yield item

    def process(self, delivery: Delivery) -> DeliveryOutcome:
        extra = {"delivery_tag": delivery.delivery_tag, "routing_key": delivery.routing_key}
        try:
            message = parse_message(delivery.body)
        except DecodeError as exc:
            logger.error("Received malformed payload", extra={**extra, "reason": str(exc)})
            return self._settle(delivery, ack=False)
        except ValidationFailure as exc:
            logger.error("Received invalid message format", extra={**extra, "reason": str(exc)})
            return self._settle(delivery, ack=False)

        handler = self._handler
        if handler is None:
            logger.error("No handler attached; rejecting delivery", extra=extra)
            return self._settle(delivery, ack=False)

        try:
            handler(message)
        except Exception as exc:  # noqa: BLE001 - any handler failure drops the delivery
            # Requeueing a poison message would loop forever.
            logger.exception(
                "Error processing message", extra={**extra, "reason": str(exc)}
            )
            return self._settle(delivery, ack=False)

        return self._settle(delivery, ack=True)

    def stop(self, timeout: float = _JOIN_TIMEOUT_SECONDS) -> None:
        with self._lock:
            worker = self._worker
            self._worker = None
        if worker is None:
            return
        self._deliveries.put(_STOP)
        if worker is not threading.current_thread():
            worker.join(timeout)

    def _subscribe(self, handle: ChannelHandle) -> None:
        handle.channel.basic_consume(
            queue=self._topology.queue,
            on_message_callback=functools.partial(self._on_message, handle.generation),
            auto_ack=False,
        )
        logger.info(
            "Subscribed on channel generation %d",
            handle.generation,
            extra={"queue": self._topology.queue},
        )

    def _on_message(
        self, generation: int, _channel: Any, method: Any, _properties: Any, body: bytes
    ) -> None:
        self._deliveries.put(
            Delivery(
                delivery_tag=method.delivery_tag,
                body=body,
                routing_key=method.routing_key,
                redelivered=bool(method.redelivered),
                generation=generation,
            )
        )

    def _run(self) -> None:
        for delivery in self.deliveries():
            try:
                self.process(delivery)
            except Exception as exc:  # noqa: BLE001 - the worker must outlive any one delivery
                logger.exception(
                    "Unexpected error processing delivery",
                    extra={"delivery_tag": delivery.delivery_tag, "reason": str(exc)},
                )
                self._settle(delivery, ack=False)

    def _settle(self, delivery: Delivery, ack: bool) -> DeliveryOutcome:
        outcome = DeliveryOutcome.acknowledged if ack else DeliveryOutcome.rejected

        def settle(channel: Any) -> None:
            if ack:
                channel.basic_ack(delivery_tag=delivery.delivery_tag)
            else:
                channel.basic_reject(delivery_tag=delivery.delivery_tag, requeue=False)

        extra = {"delivery_tag": delivery.delivery_tag, "state": outcome.value}
        try:
            self._manager.run_on_channel(settle, generation=delivery.generation)
        except StaleChannelError:
            # The broker requeued everything unacknowledged when the old channel died.
            logger.warning("Channel replaced before settling; broker will redeliver", extra=extra)
        except (BrokerError, AMQPError) as exc:
            logger.error("Failed to settle delivery", extra={**extra, "reason": str(exc)})
        except Exception:  # noqa: BLE001 - settling must not stop the worker
            logger.exception("Unexpected error settling delivery", extra=extra)
        else:
            logger.debug("Settled delivery", extra=extra)
        return outcome
