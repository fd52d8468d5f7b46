from __future__ import annotations

import logging
import threading
from typing import Optional

from broker.consumer import ConsumerLoop, MessageHandler
from broker.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD_SECONDS = 5.0
DEFAULT_ATTACH_RETRY_SECONDS = 10.0


class StartupOrchestrator:
    """Attaches the consumer once the broker is expected to be up.

    Waits a grace period for the first connection attempt, then retries
    ``attach`` forever until it succeeds or :meth:`stop` is called.
    """

    def __init__(
        self,
        consumer: ConsumerLoop,
        handler: MessageHandler,
        grace_period: float = DEFAULT_GRACE_PERIOD_SECONDS,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._consumer = consumer
        self._handler = handler
        self._grace_period = grace_period
        self._retry_policy = retry_policy or RetryPolicy.fixed(DEFAULT_ATTACH_RETRY_SECONDS)
        self._stopping = threading.Event()
        self._attached = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def attached(self) -> bool:
        return self._attached.is_set()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._run, name="consumer-startup", daemon=True
        )
        self._thread.start()

    def wait_attached(self, timeout: Optional[float] = None) -> bool:
        return self._attached.wait(timeout)

    def stop(self, timeout: float = 5.0) -> None:
        self._stopping.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        if self._stopping.wait(self._grace_period):
            return

        attempt = 0
        while not self._stopping.is_set():
            attempt += 1
            logger.info("Starting RabbitMQ consumer...", extra={"attempt": attempt})
            try:
                self._consumer.attach(self._handler)
            except Exception as exc:  # noqa: BLE001 - consumption must start eventually
                delay = self._retry_policy.delay_for(attempt)
                logger.error(
                    "Failed to start consumer, retrying",
                    extra={"attempt": attempt, "delay": delay, "reason": str(exc) or type(exc).__name__},
                )
                self._stopping.wait(delay)
                continue

            self._attached.set()
            return
