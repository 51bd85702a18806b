"""
Tests for RabbitMQ group event publishing, with pika mocked out.
"""

import json
import pytest
from decimal import Decimal
from unittest.mock import MagicMock, patch
from budget_service.config import get_settings
from budget_service.rabbitmq import producer as producer_module
from budget_service.rabbitmq.producer import RabbitMQProducer, publish_group_event


@pytest.fixture
def rabbitmq_enabled(monkeypatch):
    monkeypatch.setenv("RABBITMQ_ENABLED", "true")
    get_settings.cache_clear()
    yield
    producer_module._producer = None
    get_settings.cache_clear()


@pytest.mark.unit
class TestRabbitMQProducer:
    """Test publishing group events through pika."""

    @patch("budget_service.rabbitmq.producer.pika")
    def test_publish_sends_persistent_json(self, mock_pika):
        """Test events go to the topic exchange as persistent JSON."""
        channel = MagicMock()
        mock_pika.BlockingConnection.return_value.channel.return_value = channel

        producer = RabbitMQProducer()
        result = producer.publish_group_event("settlement.recorded", "group-1", {"amount": Decimal("45.00")})

        assert result is True
        channel.exchange_declare.assert_called_once_with(
            exchange="group.events", exchange_type="topic", durable=True
        )
        kwargs = channel.basic_publish.call_args.kwargs
        assert kwargs["routing_key"] == "settlement.recorded"
        body = json.loads(kwargs["body"])
        assert body["group_id"] == "group-1"
        assert body["payload"] == {"amount": "45.00"}
        mock_pika.BasicProperties.assert_called_once_with(delivery_mode=2, content_type="application/json")

    @patch("budget_service.rabbitmq.producer.pika")
    def test_publish_failure_returns_false(self, mock_pika):
        """Test broker failures are reported, not raised."""
        mock_pika.BlockingConnection.side_effect = Exception("connection refused")

        producer = RabbitMQProducer()

        assert producer.publish_group_event("expense.added", "group-1", {}) is False

    def test_disabled_by_default(self):
        """Test nothing is published while RabbitMQ is disabled."""
        with patch.object(producer_module, "get_rabbitmq_producer") as mock_getter:
            assert publish_group_event("expense.added", "group-1", {}) is False
            mock_getter.assert_not_called()

    def test_enabled_uses_singleton(self, rabbitmq_enabled):
        """Test every publish reuses one producer."""
        with patch.object(RabbitMQProducer, "publish_group_event", return_value=True) as mock_publish:
            assert publish_group_event("payment.recorded", "group-1", {"split_id": "s1"}) is True
            assert publish_group_event("payment.recorded", "group-1", {"split_id": "s2"}) is True

        assert mock_publish.call_count == 2
        assert producer_module.get_rabbitmq_producer() is producer_module.get_rabbitmq_producer()
