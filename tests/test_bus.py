import json
import threading
import time

import pika
import pytest

from bookstore.config import load_settings
from bookstore.messaging import bus


class FakeChannel:
    def __init__(self):
        self.declared = []
        self.published = []

    def exchange_declare(self, **kwargs):
        self.declared.append(kwargs)

    def basic_publish(self, **kwargs):
        self.published.append(kwargs)


class FakeConnection:
    def __init__(self, parameters):
        self.parameters = parameters
        self.is_closed = False
        self._channel = FakeChannel()

    def channel(self):
        return self._channel

    def close(self):
        self.is_closed = True


def test_publish_connects_lazily_and_sends_json(monkeypatch):
    monkeypatch.setattr(bus.pika, "BlockingConnection", FakeConnection)
    producer = bus.RabbitMQProducer(host="broker")
    assert producer.connection is None

    producer.publish("order.created", {"order_id": 3, "books": [{"isbn": 1, "quantity": 2}]})

    channel = producer.channel
    assert channel.declared == [{"exchange": "events", "exchange_type": "topic", "durable": True}]
    [sent] = channel.published
    assert sent["routing_key"] == "order.created"
    assert json.loads(sent["body"])["order_id"] == 3
    assert sent["properties"].delivery_mode == 2

    producer.close()
    assert producer.connection.is_closed


class SlowChannel(FakeChannel):
    """Records whether two publishes were ever inside basic_publish at once."""

    def __init__(self):
        super().__init__()
        self.active = 0
        self.overlapped = False
        self._guard = threading.Lock()

    def basic_publish(self, **kwargs):
        with self._guard:
            self.active += 1
            self.overlapped = self.overlapped or self.active > 1
        time.sleep(0.01)
        super().basic_publish(**kwargs)
        with self._guard:
            self.active -= 1


def test_concurrent_publishes_share_one_connection(monkeypatch):
    connections = []

    def connect(parameters):
        connection = FakeConnection(parameters)
        connection._channel = SlowChannel()
        connections.append(connection)
        time.sleep(0.01)
        return connection

    monkeypatch.setattr(bus.pika, "BlockingConnection", connect)
    producer = bus.RabbitMQProducer(host="broker")
    threads = [
        threading.Thread(target=producer.publish, args=("order.created", {"order_id": n}))
        for n in range(4)
    ]

    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(connections) == 1
    channel = connections[0]._channel
    assert not channel.overlapped
    assert sorted(json.loads(sent["body"])["order_id"] for sent in channel.published) == [0, 1, 2, 3]


def test_connect_gives_up_after_bounded_attempts(monkeypatch):
    attempts = []

    def refuse(parameters):
        attempts.append(parameters)
        raise pika.exceptions.AMQPConnectionError("refused")

    monkeypatch.setattr(bus.pika, "BlockingConnection", refuse)
    monkeypatch.setattr(bus.time, "sleep", lambda seconds: None)
    producer = bus.RabbitMQProducer(host="broker", connect_attempts=3)

    with pytest.raises(pika.exceptions.AMQPConnectionError):
        producer.publish("order.created", {"order_id": 1})
    assert len(attempts) == 3


def test_build_publisher_disabled_without_host(monkeypatch):
    monkeypatch.delenv("RABBITMQ_HOST", raising=False)
    assert bus.build_publisher(load_settings()) is None


def test_build_publisher_uses_configured_exchange(monkeypatch):
    monkeypatch.setenv("RABBITMQ_HOST", "broker")
    monkeypatch.setenv("RABBITMQ_EXCHANGE", "bookstore")

    producer = bus.build_publisher(load_settings())

    assert producer.host == "broker"
    assert producer.exchange_name == "bookstore"
