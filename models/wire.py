"""Decoding and structural validation of x-ray ingestion messages.

Wire format (JSON)::

    {
        "<deviceId>": {
            "data": [[offsetMillis, [x, y, speed]], ...],
            "time": <epoch millis>
        },
        ...
    }
"""

from __future__ import annotations

import json
import math
from typing import Any, Dict, Mapping

WireMessage = Dict[str, Dict[str, Any]]


class DecodeError(ValueError):
    """The payload is not well-formed JSON."""


class ValidationFailure(ValueError):
    """The payload is well-formed but does not have the x-ray message shape."""


def is_number(value: Any) -> bool:
    # JSON booleans arrive as ``bool``, which is an ``int`` subclass.
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    # json.loads accepts NaN and Infinity by default.
    return isinstance(value, float) and math.isfinite(value)


def is_sample(point: Any) -> bool:
    if not isinstance(point, list) or len(point) != 2:
        return False
    offset, coordinates = point
    return (
        is_number(offset)
        and isinstance(coordinates, list)
        and len(coordinates) == 3
        and all(is_number(value) for value in coordinates)
    )


def validate(value: Any) -> bool:
    """Return True when ``value`` has the full x-ray message shape."""
    if not isinstance(value, Mapping) or not value:
        return False

    for device_id, batch in value.items():
        if not isinstance(device_id, str):
            return False
        if not isinstance(batch, Mapping):
            return False
        if not isinstance(batch.get("data"), list) or not is_number(batch.get("time")):
            return False
        if not all(is_sample(point) for point in batch["data"]):
            return False
    return True


def decode(payload: bytes | str) -> Any:
    """Parse the raw payload as JSON without checking its shape."""
    try:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as exc:
        raise DecodeError(f"Payload is not valid JSON: {exc}") from exc


def parse_message(payload: bytes | str) -> WireMessage:
    value = decode(payload)
    if not validate(value):
        raise ValidationFailure("Payload does not match the x-ray message structure.")
    return value


def serialize(message: Mapping[str, Any]) -> bytes:
    """Compact JSON encoding; device insertion order is preserved."""
    return json.dumps(message, separators=(",", ":")).encode("utf-8")
