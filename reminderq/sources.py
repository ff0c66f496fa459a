"""Collaborators the pipeline talks to: event store, transport, sinks.

The protocols describe what the pipeline needs. The JSON-file and logging
implementations make the package usable without the host application.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol

from .models import AuditRecord, Event, EventStatus, InAppNotification
from .storage import FileLock, read_json, write_json

logger = logging.getLogger(__name__)


class EventStore(Protocol):
    def find_events_in_window(
        self,
        status: EventStatus,
        reminder_sent: bool,
        range_start: datetime,
        range_end: datetime,
    ) -> List[Event]:
        ...

    def get_event(self, event_id: str) -> Optional[Event]:
        ...

    def set_reminder_sent(self, event_id: str) -> None:
        ...

    def is_cancelled(self, event_id: str) -> bool:
        ...


class NotificationTransport(Protocol):
    def send(self, recipient_address: str, subject: str, body: str) -> None:
        """Send a message, raising on failure."""
        ...


class AuditSink(Protocol):
    def record(self, entry: AuditRecord) -> None:
        ...


class NotificationSink(Protocol):
    def notify(self, notification: InAppNotification) -> None:
        """Store a notification for display in the host application."""
        ...


class JsonEventStore:
    """Event store backed by ``events.json`` in the data directory."""

    def __init__(self, data_dir: str = ".reminderq"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.events_file = self.data_dir / "events.json"
        self.lock = FileLock(self.data_dir / "events.lock")

    def all_events(self) -> List[Event]:
        return [Event(**data) for data in read_json(self.events_file, [])]

    def _save(self, events: List[Event]) -> None:
        write_json(self.events_file, [event.model_dump(mode="json") for event in events])

    def add_event(self, event: Event) -> None:
        """Insert or replace an event."""
        with self.lock.hold():
            events = [e for e in self.all_events() if e.id != event.id]
            events.append(event)
            self._save(events)

    def find_events_in_window(
        self,
        status: EventStatus,
        reminder_sent: bool,
        range_start: datetime,
        range_end: datetime,
    ) -> List[Event]:
        return [
            event
            for event in self.all_events()
            if event.status == status
            and event.reminder_sent == reminder_sent
            and range_start <= event.scheduled_at <= range_end
        ]

    def get_event(self, event_id: str) -> Optional[Event]:
        for event in self.all_events():
            if event.id == event_id:
                return event
        return None

    def set_reminder_sent(self, event_id: str) -> None:
        with self.lock.hold():
            events = self.all_events()
            for event in events:
                if event.id == event_id:
                    event.reminder_sent = True
                    self._save(events)
                    return
        raise KeyError(event_id)

    def is_cancelled(self, event_id: str) -> bool:
        event = self.get_event(event_id)
        return event is not None and event.status == EventStatus.CANCELLED


class JsonAuditSink:
    """Appends audit records as JSON lines."""

    def __init__(self, data_dir: str = ".reminderq"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.audit_file = self.data_dir / "audit.log"
        self.lock = FileLock(self.data_dir / "audit.lock")

    def record(self, entry: AuditRecord) -> None:
        with self.lock.hold():
            with open(self.audit_file, "a", encoding="utf-8") as f:
                f.write(entry.model_dump_json() + "\n")

    def read_all(self) -> List[AuditRecord]:
        if not self.audit_file.exists():
            return []
        with open(self.audit_file, "r", encoding="utf-8") as f:
            return [AuditRecord(**json.loads(line)) for line in f if line.strip()]


class JsonNotificationSink:
    """Appends in-app notifications as JSON lines to ``notifications.log``."""

    def __init__(self, data_dir: str = ".reminderq"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.notifications_file = self.data_dir / "notifications.log"
        self.lock = FileLock(self.data_dir / "notifications.lock")

    def notify(self, notification: InAppNotification) -> None:
        with self.lock.hold():
            with open(self.notifications_file, "a", encoding="utf-8") as f:
                f.write(notification.model_dump_json() + "\n")

    def for_user(self, user_id: str) -> List[InAppNotification]:
        if not self.notifications_file.exists():
            return []
        with open(self.notifications_file, "r", encoding="utf-8") as f:
            notifications = [InAppNotification(**json.loads(line)) for line in f if line.strip()]
        return [n for n in notifications if n.user_id == user_id]


class LoggingTransport:
    """Transport that only logs the message."""

    def send(self, recipient_address: str, subject: str, body: str) -> None:
        logger.info("Sending reminder to %s", recipient_address)
        logger.info("Subject: %s", subject)
        logger.debug("Body:\n%s", body)
