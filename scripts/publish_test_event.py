"""Send one booking event to the configured RabbitMQ queue to check the wiring."""
from reservations.config import get_settings
from reservations.events import BookingEvent, RabbitMQNotifier

settings = get_settings()

notifier = RabbitMQNotifier(host=settings.rabbitmq_host, queue=settings.rabbitmq_queue)
notifier.publish(
    BookingEvent(
        booking_id=999,
        room_id=1,
        new_status="PENDING",
        contact_email="test@example.com",
        event="test_message",
    )
)
print(f"Test message sent to RabbitMQ queue '{settings.rabbitmq_queue}' on {settings.rabbitmq_host}.")
