import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import pika
from budget_service.config import get_settings

logger = logging.getLogger(__name__)


class RabbitMQProducer:
    """Publishes committed group ledger events to a topic exchange"""

    def __init__(self):
        self.settings = get_settings()
        self.connection: Optional[pika.BlockingConnection] = None
        self.channel = None

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and not self.connection.is_closed

    def connect(self) -> None:
        """Open a blocking connection and declare the group events exchange"""
        try:
            parameters = pika.ConnectionParameters(
                host=self.settings.rabbitmq_host,
                port=self.settings.rabbitmq_port,
                virtual_host=self.settings.rabbitmq_virtual_host,
                credentials=pika.PlainCredentials(
                    self.settings.rabbitmq_username,
                    self.settings.rabbitmq_password
                )
            )
            self.connection = pika.BlockingConnection(parameters)
            self.channel = self.connection.channel()
            self.channel.exchange_declare(
                exchange=self.settings.group_events_exchange,
                exchange_type="topic",
                durable=True
            )
            logger.info(f"Connected to RabbitMQ at {self.settings.rabbitmq_host}:{self.settings.rabbitmq_port}")
        except Exception as e:
            logger.error(f"Could not connect to RabbitMQ: {e}")
            raise

    def disconnect(self) -> None:
        if self.is_connected:
            self.connection.close()
            logger.info("RabbitMQ connection closed")
        self.connection = None
        self.channel = None

    def publish_group_event(self, event_type: str, group_id: str, payload: Dict[str, Any]) -> bool:
        """
        Publish one group event; the event type doubles as the routing key.

        Args:
            event_type: e.g. "expense.added", "payment.recorded", "settlement.recorded"
            group_id: Group the event belongs to
            payload: Event data; Decimals and datetimes are sent as strings

        Returns:
            bool: False if the broker could not be reached or refused the message
        """
        try:
            if not self.is_connected:
                self.connect()

            event = {
                "event_type": event_type,
                "group_id": group_id,
                "payload": payload,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
            self.channel.basic_publish(
                exchange=self.settings.group_events_exchange,
                routing_key=event_type,
                body=json.dumps(event, default=str),
                properties=pika.BasicProperties(delivery_mode=2, content_type="application/json")
            )
            logger.info(f"Published {event_type} event for group {group_id}")
            return True
        except Exception as e:
            logger.error(f"Failed to publish {event_type} event for group {group_id}: {e}")
            return False


_producer: Optional[RabbitMQProducer] = None


def get_rabbitmq_producer() -> RabbitMQProducer:
    """Process-wide producer, created on first use; connects lazily on first publish"""
    global _producer
    if _producer is None:
        _producer = RabbitMQProducer()
    return _producer


def close_rabbitmq_producer() -> None:
    global _producer
    if _producer is not None:
        _producer.disconnect()
        _producer = None


def publish_group_event(event_type: str, group_id: str, payload: Dict[str, Any]) -> bool:
    """
    Publish an event after its transaction committed.

    Does nothing when RABBITMQ_ENABLED is false; broker failures are logged
    and never propagate to the caller.
    """
    if not get_settings().rabbitmq_enabled:
        logger.debug(f"RabbitMQ disabled, skipping {event_type} event for group {group_id}")
        return False
    return get_rabbitmq_producer().publish_group_event(event_type, group_id, payload)
