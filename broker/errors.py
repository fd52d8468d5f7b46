"""Exceptions raised by the broker layer."""

from __future__ import annotations


class BrokerError(Exception):
    """Base class for broker connection and channel failures."""


class BrokerUnavailable(BrokerError):
    """No live channel exists right now; the reconnect loop is still running."""


class StaleChannelError(BrokerError):
    """The channel a caller holds has been replaced by a reconnect."""
