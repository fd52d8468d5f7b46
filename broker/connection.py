"""RabbitMQ connection ownership, topology declaration and reconnect loop.

pika's ``BlockingConnection`` is not thread safe, so the manager owns a single
I/O thread that opens the connection, declares the topology and pumps
``process_data_events``. Every other thread reaches the channel through
:meth:`ConnectionManager.run_on_channel`, which hands the work to the I/O
thread with ``add_callback_threadsafe`` and waits on a future.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Set, TypeVar

import pika
from pika.exceptions import AMQPError

from broker.errors import BrokerUnavailable, StaleChannelError
from broker.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PREFETCH = 10
DEFAULT_HEARTBEAT_SECONDS = 60
DEFAULT_RECONNECT_SECONDS = 5.0

_POLL_SECONDS = 1.0
_CALL_TIMEOUT_SECONDS = 30.0
_JOIN_TIMEOUT_SECONDS = 5.0


class ConnectionState(str, Enum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"


@dataclass(frozen=True)
class BrokerTopology:
    """Exchange, queue and binding declared on every successful connect."""

    exchange: str
    queue: str
    routing_key: str
    exchange_type: str = "topic"
    prefetch: int = DEFAULT_PREFETCH

    def declare(self, channel: Any) -> None:
        # All declarations are idempotent, so reconnects never duplicate state.
        channel.exchange_declare(
            exchange=self.exchange, exchange_type=self.exchange_type, durable=True
        )
        channel.queue_declare(queue=self.queue, durable=True)
        channel.queue_bind(
            queue=self.queue, exchange=self.exchange, routing_key=self.routing_key
        )
        channel.basic_qos(prefetch_count=self.prefetch)


@dataclass(frozen=True)
class ChannelHandle:
    """A channel tagged with the connection generation that opened it."""

    channel: Any
    generation: int


ChannelSetup = Callable[[ChannelHandle], None]
ConnectionFactory = Callable[[], Any]


def build_connection_factory(
    url: str, heartbeat: int = DEFAULT_HEARTBEAT_SECONDS
) -> ConnectionFactory:
    def factory() -> pika.BlockingConnection:
        parameters = pika.URLParameters(url)
        parameters.heartbeat = heartbeat
        # Retries belong to the manager's loop, not to pika.
        parameters.connection_attempts = 1
        return pika.BlockingConnection(parameters)

    return factory


def _close_quietly(resource: Any, what: str) -> None:
    if resource is None:
        return
    try:
        if getattr(resource, "is_open", True):
            resource.close()
    except Exception as exc:  # noqa: BLE001 - shutdown must always complete
        logger.warning("Error while closing broker %s", what, extra={"reason": str(exc)})


class ConnectionManager:
    """Owns the one live broker connection and channel for the process."""

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        topology: BrokerTopology,
        retry_policy: Optional[RetryPolicy] = None,
        poll_interval: float = _POLL_SECONDS,
    ) -> None:
        self.topology = topology
        self._connection_factory = connection_factory
        self._retry_policy = retry_policy or RetryPolicy.fixed(DEFAULT_RECONNECT_SECONDS)
        self._poll_interval = poll_interval

        self._lock = threading.Lock()
        self._state = ConnectionState.disconnected
        self._connection: Any = None
        self._handle: Optional[ChannelHandle] = None
        self._generation = 0
        self._setups: List[ChannelSetup] = []
        self._pending: Set[Future[Any]] = set()

        self._connected = threading.Event()
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._io_thread_id: Optional[int] = None

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def start(self) -> None:
        """Spawn the I/O thread; it keeps reconnecting until :meth:`close`."""
        with self._lock:
            if self._thread is not None:
                return
            self._stopping.clear()
            self._thread = threading.Thread(
                target=self._run, name="broker-io", daemon=True
            )
            self._thread.start()

    def await_connected(self, timeout: Optional[float] = None) -> bool:
        return self._connected.wait(timeout)

    def channel(self) -> ChannelHandle:
        with self._lock:
            if self._state is not ConnectionState.connected or self._handle is None:
                raise BrokerUnavailable("No live broker channel.")
            return self._handle

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return self._handle is not None and self._handle.generation == generation

    def run_on_channel(
        self,
        fn: Callable[[Any], T],
        generation: Optional[int] = None,
        timeout: float = _CALL_TIMEOUT_SECONDS,
    ) -> T:
        """Run ``fn(channel)`` on the I/O thread and return its result.

        When ``generation`` is given the call fails with
        :class:`StaleChannelError` unless that channel is still the live one.
        """
        future: Future[T] = Future()
        with self._lock:
            handle = self._handle
            if self._state is not ConnectionState.connected or handle is None:
                raise BrokerUnavailable("No live broker channel.")
            if generation is not None and generation != handle.generation:
                raise StaleChannelError(
                    f"Channel generation {generation} was replaced by {handle.generation}."
                )
            connection = self._connection
            if threading.get_ident() != self._io_thread_id:
                self._pending.add(future)

        if threading.get_ident() == self._io_thread_id:
            return fn(handle.channel)

        def invoke() -> None:
            # False once the caller has timed out and cancelled the call.
            if not future.set_running_or_notify_cancel():
                return
            if not self.is_current(handle.generation):
                future.set_exception(StaleChannelError("Channel replaced before the call ran."))
                return
            try:
                future.set_result(fn(handle.channel))
            except Exception as exc:  # noqa: BLE001 - re-raised in the calling thread
                future.set_exception(exc)

        future.add_done_callback(self._forget)
        try:
            connection.add_callback_threadsafe(invoke)
        except AMQPError as exc:
            self._forget(future)
            raise BrokerUnavailable(f"Broker connection is closing: {exc}") from exc

        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            if future.cancel():
                raise BrokerUnavailable("Timed out waiting for the broker I/O thread.") from exc
        # Already running on the I/O thread; its outcome is the real one.
        return future.result()

    def add_setup(self, setup: ChannelSetup) -> None:
        """Run ``setup`` on the live channel now and again after every reconnect.

        Raises :class:`BrokerUnavailable` when there is no live channel; the
        setup is only remembered once it has succeeded.
        """

        def apply(_channel: Any) -> None:
            # Runs on the I/O thread, so no reconnect can interleave.
            handle = self.channel()
            setup(handle)
            self._setups.append(setup)

        self.run_on_channel(apply)

    def close(self, timeout: float = _JOIN_TIMEOUT_SECONDS) -> None:
        """Stop reconnecting, then close channel and connection.

        Never raises; errors during shutdown are logged.
        """
        self._stopping.set()
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Broker I/O thread did not stop in time")
        else:
            logger.info("Disconnected from RabbitMQ")

    def _forget(self, future: Future[Any]) -> None:
        with self._lock:
            self._pending.discard(future)

    def _set_state(self, state: ConnectionState, reason: Optional[str] = None) -> None:
        with self._lock:
            previous = self._state
            self._state = state
        if previous is not state:
            logger.info(
                "Broker connection %s -> %s",
                previous.value,
                state.value,
                extra={"state": state.value, "reason": reason},
            )

    def _run(self) -> None:
        self._io_thread_id = threading.get_ident()
        attempt = 0
        try:
            while not self._stopping.is_set():
                self._set_state(ConnectionState.connecting)
                try:
                    self._open()
                except Exception as exc:  # noqa: BLE001 - the loop has no terminal failure state
                    attempt += 1
                    delay = self._retry_policy.delay_for(attempt)
                    self._set_state(ConnectionState.disconnected, reason=str(exc) or type(exc).__name__)
                    logger.warning(
                        "Failed to connect to RabbitMQ; retrying",
                        extra={"attempt": attempt, "delay": delay, "reason": str(exc) or type(exc).__name__},
                    )
                    self._stopping.wait(delay)
                    continue

                attempt = 0
                try:
                    self._pump()
                except Exception as exc:  # noqa: BLE001 - any pump failure means reconnect
                    logger.error(
                        "Disconnected from RabbitMQ",
                        extra={"reason": str(exc) or type(exc).__name__},
                    )
                finally:
                    self._teardown()
        finally:
            self._set_state(ConnectionState.disconnected)
            self._io_thread_id = None

    def _open(self) -> None:
        connection = self._connection_factory()
        try:
            channel = connection.channel()
            channel.confirm_delivery()
            self.topology.declare(channel)
            with self._lock:
                # Numbered per opened channel, so a failed setup never reuses one.
                self._generation += 1
                handle = ChannelHandle(channel=channel, generation=self._generation)
            for setup in list(self._setups):
                setup(handle)
        except Exception:
            _close_quietly(connection, "connection")
            raise

        with self._lock:
            self._connection = connection
            self._handle = handle
        self._set_state(ConnectionState.connected)
        self._connected.set()
        logger.info(
            "Queue %s bound to exchange %s",
            self.topology.queue,
            self.topology.exchange,
            extra={"routing_key": self.topology.routing_key},
        )

    def _pump(self) -> None:
        while not self._stopping.is_set():
            with self._lock:
                connection = self._connection
                handle = self._handle
            if handle is None or not getattr(handle.channel, "is_open", True):
                raise BrokerUnavailable("Channel was closed by the broker.")
            connection.process_data_events(time_limit=self._poll_interval)

    def _teardown(self) -> None:
        with self._lock:
            connection, handle = self._connection, self._handle
            self._connection = None
            self._handle = None
            pending = list(self._pending)
            self._pending.clear()
        self._connected.clear()
        self._set_state(ConnectionState.disconnected)

        _close_quietly(handle.channel if handle else None, "channel")
        _close_quietly(connection, "connection")

        for future in pending:
            if not future.done():
                future.set_exception(BrokerUnavailable("Broker connection was lost."))
