from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_RABBITMQ_URL_ENV = "RABBITMQ_URL"
_RABBITMQ_QUEUE_ENV = "RABBITMQ_QUEUE"
_RABBITMQ_EXCHANGE_ENV = "RABBITMQ_EXCHANGE"
_RABBITMQ_ROUTING_KEY_ENV = "RABBITMQ_ROUTING_KEY"
_RABBITMQ_HEARTBEAT_ENV = "RABBITMQ_HEARTBEAT"
_RABBITMQ_RETRY_ENV = "RABBITMQ_RETRY_SECONDS"
_CONSUMER_ENABLED_ENV = "CONSUMER_ENABLED"
_CONSUMER_DELAY_ENV = "CONSUMER_START_DELAY_SECONDS"
_CONSUMER_RETRY_ENV = "CONSUMER_RETRY_SECONDS"
_SIGNALS_PATH_ENV = "SIGNALS_PERSISTENCE_PATH"
_SAMPLE_DATA_ENV = "SAMPLE_DATA_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    rabbitmq_url: str
    queue_name: str
    exchange_name: str
    routing_key: str
    heartbeat_seconds: int
    reconnect_seconds: float
    consumer_enabled: bool
    consumer_start_delay: float
    consumer_retry_seconds: float
    signals_persistence_path: Optional[str]
    sample_data_path: str
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUE_VALUES:
        return True
    if candidate in _FALSE_VALUES:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        rabbitmq_url=_read_str_env(_RABBITMQ_URL_ENV, "amqp://localhost:5672"),
        queue_name=_read_str_env(_RABBITMQ_QUEUE_ENV, "xray-queue"),
        exchange_name=_read_str_env(_RABBITMQ_EXCHANGE_ENV, "xray-exchange"),
        routing_key=_read_str_env(_RABBITMQ_ROUTING_KEY_ENV, "xray.data"),
        heartbeat_seconds=_read_positive_int(_RABBITMQ_HEARTBEAT_ENV, 60),
        reconnect_seconds=_read_positive_float(_RABBITMQ_RETRY_ENV, 5.0),
        consumer_enabled=_read_bool(_CONSUMER_ENABLED_ENV, True),
        consumer_start_delay=_read_positive_float(_CONSUMER_DELAY_ENV, 5.0),
        consumer_retry_seconds=_read_positive_float(_CONSUMER_RETRY_ENV, 10.0),
        signals_persistence_path=_read_optional_env(_SIGNALS_PATH_ENV, "./tmp/signals.json"),
        sample_data_path=_read_str_env(_SAMPLE_DATA_ENV, "sample-xray-data.json"),
        log_level=_read_log_level("INFO"),
    )
