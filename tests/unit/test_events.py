"""Unit tests for booking event delivery and auditing."""
import json
from unittest.mock import MagicMock, patch

from reservations.config import Settings
from reservations.events import (
    AuditLogWriter,
    AuditRecord,
    BookingEvent,
    EventDispatcher,
    LogNotifier,
    RabbitMQNotifier,
    build_dispatcher,
)

EVENT = BookingEvent(booking_id=7, room_id=3, new_status="CANCELLED", contact_email="ana@example.com")


class TestRabbitMQNotifier:
    """Test publishing to RabbitMQ."""

    @patch("reservations.events.pika")
    def test_publish_persistent_message(self, mock_pika):
        """Test events go to a durable queue as persistent JSON."""
        connection = MagicMock()
        channel = connection.channel.return_value
        mock_pika.BlockingConnection.return_value = connection

        RabbitMQNotifier(host="broker", queue="bookings").publish(EVENT)

        mock_pika.ConnectionParameters.assert_called_once_with(host="broker")
        channel.queue_declare.assert_called_once_with(queue="bookings", durable=True)
        kwargs = channel.basic_publish.call_args.kwargs
        assert kwargs["routing_key"] == "bookings"
        assert json.loads(kwargs["body"])["new_status"] == "CANCELLED"
        mock_pika.BasicProperties.assert_called_once_with(delivery_mode=2)
        connection.close.assert_called_once()


class TestEventDispatcher:
    """Test fan-out to receivers."""

    def test_failures_are_contained(self):
        """Test one failing receiver does not stop the others."""
        broken = MagicMock()
        broken.publish.side_effect = RuntimeError("smtp down")
        healthy = MagicMock()

        EventDispatcher(notifiers=[broken, healthy]).notify(EVENT)

        healthy.publish.assert_called_once_with(EVENT)

    def test_audit_failures_are_contained(self):
        """Test audit writers failing does not raise."""
        broken = MagicMock()
        broken.write.side_effect = OSError("disk full")
        record = AuditRecord(actor_id=None, action="booking_created", booking_id=7, before_state=None, after_state={})

        EventDispatcher(auditors=[broken]).audit(record)

        broken.write.assert_called_once_with(record)

    def test_audit_log_writer(self):
        """Test audit lines name the actor and action."""
        writer = AuditLogWriter(service_name="bookings-test")
        record = AuditRecord(
            actor_id=None,
            action="booking_cancelled",
            booking_id=7,
            before_state={"status": "PENDING"},
            after_state={"status": "CANCELLED"},
        )

        with patch.object(writer._logger, "info") as info:
            writer.write(record)

        args = info.call_args.args
        assert "anonymous" in args
        assert "booking_cancelled" in args


class TestBuildDispatcher:
    """Test backend selection from settings."""

    def test_log_backend(self):
        """Test the default backend logs events."""
        dispatcher = build_dispatcher(Settings(_env_file=None, notification_backend="log"))

        assert isinstance(dispatcher.notifiers[0], LogNotifier)
        assert isinstance(dispatcher.auditors[0], AuditLogWriter)

    def test_rabbitmq_backend(self):
        """Test the RabbitMQ backend uses the configured queue."""
        settings = Settings(_env_file=None, notification_backend="rabbitmq", rabbitmq_host="mq", rabbitmq_queue="events")

        notifier = build_dispatcher(settings).notifiers[0]

        assert isinstance(notifier, RabbitMQNotifier)
        assert (notifier.host, notifier.queue) == ("mq", "events")
