import json
import logging
import threading
import time

import pika

logger = logging.getLogger(__name__)


class RabbitMQProducer:
    """
    Publishes bookstore events (e.g. 'order.created') to a topic exchange.
    Connects lazily on the first publish and retries a bounded number of
    times, so a missing broker delays a request instead of hanging it.
    One producer is shared by request threads; pika connections are not
    thread-safe, so connecting, publishing and closing hold a lock.
    """

    def __init__(self, host, exchange_name="events", exchange_type="topic",
                 connect_attempts=3, retry_delay=1.0):
        self.host = host
        self.exchange_name = exchange_name
        self.exchange_type = exchange_type
        self.connect_attempts = connect_attempts
        self.retry_delay = retry_delay
        self.connection = None
        self.channel = None
        self._lock = threading.Lock()

    def connect(self):
        """Establishes a connection to RabbitMQ, retrying if it is not ready."""
        for attempt in range(1, self.connect_attempts + 1):
            try:
                parameters = pika.ConnectionParameters(host=self.host)
                self.connection = pika.BlockingConnection(parameters)
                self.channel = self.connection.channel()

                # Declare the exchange (durable ensures it survives restarts)
                self.channel.exchange_declare(
                    exchange=self.exchange_name,
                    exchange_type=self.exchange_type,
                    durable=True
                )
                logger.info("Connected to RabbitMQ exchange %s on %s", self.exchange_name, self.host)
                return
            except pika.exceptions.AMQPConnectionError:
                if attempt == self.connect_attempts:
                    raise
                logger.warning("RabbitMQ not ready (attempt %d), retrying in %.1fs", attempt, self.retry_delay)
                time.sleep(self.retry_delay)

    def publish(self, routing_key, message):
        """
        Publishes a message to the exchange with a specific routing key.

        Args:
            routing_key (str): The topic key (e.g., 'order.created').
            message (dict): The data payload to send.
        """
        body = json.dumps(message, default=str)
        with self._lock:
            # Reconnect if the connection was lost
            if not self.connection or self.connection.is_closed:
                self.connect()

            self.channel.basic_publish(
                exchange=self.exchange_name,
                routing_key=routing_key,
                body=body,
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Make message persistent
                    content_type='application/json'
                )
            )
        logger.info("Sent event '%s' for order %s", routing_key, message.get("order_id"))

    def close(self):
        """Closes the connection cleanly."""
        with self._lock:
            if self.connection and not self.connection.is_closed:
                self.connection.close()


def build_publisher(settings):
    """Returns a producer for the configured broker, or None when events are disabled."""
    if not settings.rabbitmq_host:
        return None
    return RabbitMQProducer(host=settings.rabbitmq_host, exchange_name=settings.rabbitmq_exchange)
