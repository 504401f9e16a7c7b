"""Notification and audit boundaries of the reservation engine.

The engine only emits; delivering an email or persisting an activity log is
the receiver's job. Nothing raised by a receiver may undo a committed booking,
so the dispatcher logs receiver failures and carries on.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import pika
from circuitbreaker import circuit

from .config import Settings, get_settings
from .logging_middleware import build_file_logger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingEvent:
    booking_id: int
    room_id: int
    new_status: str
    contact_email: Optional[str]
    event: str = "booking_updated"
    occurred_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass(frozen=True)
class AuditRecord:
    actor_id: Optional[int]
    action: str
    booking_id: int
    before_state: Optional[Dict[str, Any]]
    after_state: Optional[Dict[str, Any]]


class Notifier(Protocol):
    def publish(self, event: BookingEvent) -> None: ...


class AuditWriter(Protocol):
    def write(self, record: AuditRecord) -> None: ...


class LogNotifier:
    def publish(self, event: BookingEvent) -> None:
        logger.info("booking event %s", json.dumps(asdict(event)))


class RabbitMQNotifier:
    """Publishes booking events as persistent messages on a durable queue."""

    def __init__(self, host: str, queue: str) -> None:
        self.host = host
        self.queue = queue

    def publish(self, event: BookingEvent) -> None:
        self._send(json.dumps(asdict(event)))

    @circuit(failure_threshold=5, recovery_timeout=60)
    def _send(self, body: str) -> None:
        connection = pika.BlockingConnection(pika.ConnectionParameters(host=self.host))
        try:
            channel = connection.channel()
            channel.queue_declare(queue=self.queue, durable=True)
            channel.basic_publish(
                exchange="",
                routing_key=self.queue,
                body=body,
                properties=pika.BasicProperties(delivery_mode=2),
            )
        finally:
            connection.close()


class AuditLogWriter:
    def __init__(self, service_name: str = "bookings") -> None:
        self._logger = build_file_logger(service_name)

    def write(self, record: AuditRecord) -> None:
        self._logger.info(
            "actor=%s | action=%s | booking=%s | before=%s | after=%s",
            record.actor_id if record.actor_id is not None else "anonymous",
            record.action,
            record.booking_id,
            json.dumps(record.before_state, default=str),
            json.dumps(record.after_state, default=str),
        )


class EventDispatcher:
    def __init__(self, notifiers: Optional[List[Notifier]] = None, auditors: Optional[List[AuditWriter]] = None) -> None:
        self.notifiers = list(notifiers or [])
        self.auditors = list(auditors or [])

    def notify(self, event: BookingEvent) -> None:
        for notifier in self.notifiers:
            try:
                notifier.publish(event)
            except Exception:
                logger.exception("Failed to deliver %s for booking %s", event.event, event.booking_id)

    def audit(self, record: AuditRecord) -> None:
        for auditor in self.auditors:
            try:
                auditor.write(record)
            except Exception:
                logger.exception("Failed to write audit record %s for booking %s", record.action, record.booking_id)


def build_dispatcher(settings: Optional[Settings] = None) -> EventDispatcher:
    settings = settings or get_settings()
    if settings.notification_backend == "rabbitmq":
        notifier: Notifier = RabbitMQNotifier(settings.rabbitmq_host, settings.rabbitmq_queue)
    else:
        notifier = LogNotifier()
    return EventDispatcher(notifiers=[notifier], auditors=[AuditLogWriter()])
