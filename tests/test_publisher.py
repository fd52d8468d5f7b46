from __future__ import annotations

import json
import logging

import pika
from pika.exceptions import UnroutableError

from broker.connection import BrokerTopology, ConnectionManager
from broker.publisher import Publisher
from models.wire import serialize

MESSAGE = {"dev-1": {"data": [[762, [51.339764, 12.339223833, 1.2038]]], "time": 1735683480000}}


def test_publish_sends_persistent_json(connected_manager: ConnectionManager, topology: BrokerTopology, fake_broker) -> None:
    publisher = Publisher(connected_manager, topology)

    assert publisher.publish(MESSAGE) is True

    [sent] = fake_broker.channel.published
    assert sent["exchange"] == "xray-exchange"
    assert sent["routing_key"] == "xray.data"
    assert sent["mandatory"] is True
    assert sent["body"] == serialize(MESSAGE)
    assert json.loads(sent["body"]) == MESSAGE
    assert sent["properties"].content_type == "application/json"
    assert sent["properties"].delivery_mode == pika.DeliveryMode.Persistent.value


def test_publish_uses_explicit_routing_key(connected_manager: ConnectionManager, topology: BrokerTopology, fake_broker) -> None:
    publisher = Publisher(connected_manager, topology)

    assert publisher.publish(MESSAGE, routing_key="xray.replay") is True
    assert fake_broker.channel.published[0]["routing_key"] == "xray.replay"


def test_publish_rejects_invalid_message(connected_manager: ConnectionManager, topology: BrokerTopology, fake_broker, caplog) -> None:
    publisher = Publisher(connected_manager, topology)

    with caplog.at_level(logging.ERROR, logger="broker.publisher"):
        assert publisher.publish({"dev-1": {"data": "nope", "time": 1}}) is False
        assert publisher.publish({}) is False

    assert fake_broker.channel.published == []
    assert any("Invalid message format" in record.getMessage() for record in caplog.records)


def test_publish_returns_false_when_broker_refuses(connected_manager: ConnectionManager, topology: BrokerTopology, fake_broker) -> None:
    fake_broker.channel.publish_error = UnroutableError([])
    publisher = Publisher(connected_manager, topology)

    assert publisher.publish(MESSAGE) is False


def test_publish_returns_false_without_connection(manager: ConnectionManager, topology: BrokerTopology) -> None:
    publisher = Publisher(manager, topology)

    assert publisher.publish(MESSAGE) is False


def test_publish_returns_false_on_unexpected_error(connected_manager: ConnectionManager, topology: BrokerTopology, fake_broker) -> None:
    fake_broker.channel.publish_error = RuntimeError("serializer exploded")
    publisher = Publisher(connected_manager, topology)

    assert publisher.publish(MESSAGE) is False
