"""In-memory stand-ins for pika's blocking connection and channel."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional

import pytest
from pika.exceptions import AMQPConnectionError, ConnectionWrongStateError, StreamLostError

from broker.connection import BrokerTopology, ConnectionManager
from broker.retry import RetryPolicy


class FakeChannel:
    def __init__(self) -> None:
        self.is_open = True
        self.calls: List[tuple[str, Dict[str, Any]]] = []
        self.consumers: List[Dict[str, Any]] = []
        self.published: List[Dict[str, Any]] = []
        self.acks: List[int] = []
        self.rejects: List[tuple[int, bool]] = []
        self.publish_error: Optional[Exception] = None
        self.close_error: Optional[Exception] = None

    def confirm_delivery(self) -> None:
        self.calls.append(("confirm_delivery", {}))

    def exchange_declare(self, **kwargs: Any) -> None:
        self.calls.append(("exchange_declare", kwargs))

    def queue_declare(self, **kwargs: Any) -> None:
        self.calls.append(("queue_declare", kwargs))

    def queue_bind(self, **kwargs: Any) -> None:
        self.calls.append(("queue_bind", kwargs))

    def basic_qos(self, **kwargs: Any) -> None:
        self.calls.append(("basic_qos", kwargs))

    def basic_consume(self, queue: str, on_message_callback: Callable[..., None], auto_ack: bool) -> str:
        self.consumers.append(
            {"queue": queue, "callback": on_message_callback, "auto_ack": auto_ack}
        )
        return f"ctag-{len(self.consumers)}"

    def basic_publish(self, **kwargs: Any) -> None:
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append(kwargs)

    def basic_ack(self, delivery_tag: int) -> None:
        self.acks.append(delivery_tag)

    def basic_reject(self, delivery_tag: int, requeue: bool) -> None:
        self.rejects.append((delivery_tag, requeue))

    def close(self) -> None:
        self.is_open = False
        if self.close_error is not None:
            raise self.close_error


class FakeConnection:
    def __init__(self, channel: FakeChannel) -> None:
        self.is_open = True
        self.fake_channel = channel
        self.close_error: Optional[Exception] = None
        self.events_error: Optional[Exception] = None
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()
        self._dropped = False

    def channel(self) -> FakeChannel:
        return self.fake_channel

    def add_callback_threadsafe(self, callback: Callable[[], None]) -> None:
        if not self.is_open:
            raise ConnectionWrongStateError("Connection is closed.")
        with self._lock:
            self._callbacks.append(callback)

    def process_data_events(self, time_limit: float = 0) -> None:
        if self._dropped:
            self.is_open = False
            self.fake_channel.is_open = False
            raise StreamLostError("Transport indicated EOF")
        if self.events_error is not None:
            raise self.events_error
        with self._lock:
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        time.sleep(time_limit)

    def drop(self) -> None:
        self._dropped = True

    def close(self) -> None:
        self.is_open = False
        if self.close_error is not None:
            raise self.close_error


class FakeBroker:
    """Connection factory that can refuse the first few connection attempts."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.attempts = 0
        self.refusal: Exception = AMQPConnectionError("Connection refused")
        self.connections: List[FakeConnection] = []

    def __call__(self) -> FakeConnection:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.refusal
        connection = FakeConnection(FakeChannel())
        self.connections.append(connection)
        return connection

    @property
    def channel(self) -> FakeChannel:
        return self.connections[-1].fake_channel


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture()
def topology() -> BrokerTopology:
    return BrokerTopology(exchange="xray-exchange", queue="xray-queue", routing_key="xray.data")


@pytest.fixture()
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture()
def manager(fake_broker: FakeBroker, topology: BrokerTopology) -> Iterator[ConnectionManager]:
    manager = ConnectionManager(
        fake_broker,
        topology,
        retry_policy=RetryPolicy.fixed(0.01),
        poll_interval=0.01,
    )
    yield manager
    manager.close()


@pytest.fixture()
def connected_manager(manager: ConnectionManager) -> ConnectionManager:
    manager.start()
    assert manager.await_connected(timeout=2.0)
    return manager


@pytest.fixture()
def wait_for() -> Callable[..., bool]:
    return wait_until
