"""Composition root and lifecycle of the reminder pipeline."""

import logging
import threading
import time
from typing import List, Optional

from .config import Settings
from .models import Job, QueueStats
from .monitor import MonitoringFacade
from .queue import JobQueue
from .scheduler import ReminderScheduler
from .sources import (
    AuditSink,
    EventStore,
    JsonAuditSink,
    JsonEventStore,
    JsonNotificationSink,
    LoggingTransport,
    NotificationSink,
    NotificationTransport,
)
from .storage import Storage
from .worker import ReminderHandler, Worker

logger = logging.getLogger(__name__)


class ReminderService:
    """Wires one queue into the scheduler, the workers and the monitor."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        events: Optional[EventStore] = None,
        transport: Optional[NotificationTransport] = None,
        audit: Optional[AuditSink] = None,
        queue: Optional[JobQueue] = None,
        notifications: Optional[NotificationSink] = None,
    ):
        self.settings = settings or Settings()
        s = self.settings
        self.events = events or JsonEventStore(s.data_dir)
        self.transport = transport or LoggingTransport()
        self.audit = audit or JsonAuditSink(s.data_dir)
        self.notifications = notifications or JsonNotificationSink(s.data_dir)
        self.queue = queue or JobQueue(Storage(s.data_dir), s.queue_policy())

        self.handler = ReminderHandler(
            self.events,
            self.transport,
            self.audit,
            dispatch_timeout=s.dispatch_timeout_seconds,
            default_timezone=s.default_timezone,
            default_locale=s.default_locale,
            sender_name=s.sender_name,
            queue=self.queue,
            notifications=self.notifications,
        )
        self.scheduler = ReminderScheduler(
            self.queue,
            self.events,
            interval=s.tick_interval_seconds,
            window_low_hours=s.window_low_hours,
            window_high_hours=s.window_high_hours,
            lead_time_hours=s.lead_time_hours,
            tick_timeout=s.tick_timeout_seconds,
        )
        self.monitor = MonitoringFacade(self.queue)
        self.workers: List[Worker] = []
        self._threads: List[threading.Thread] = []

    @property
    def started(self) -> bool:
        return bool(self._threads)

    def start(self, worker_count: Optional[int] = None) -> None:
        """Recover stalled jobs, start the workers and the scheduler."""
        if self.started:
            return
        count = worker_count or self.settings.worker_count
        self.queue.recover_active()

        for i in range(count):
            worker = Worker(self.queue, worker_id=i + 1, poll_interval=self.settings.poll_interval_seconds)
            worker.consume(self.handler, self.handler.flag_event)
            thread = threading.Thread(target=worker.run, name=f"reminder-worker-{i + 1}", daemon=True)
            self.workers.append(worker)
            self._threads.append(thread)
            thread.start()

        self.scheduler.start()
        logger.info("Reminder service started with %d worker(s)", count)

    def shutdown(self, timeout: float = 30) -> None:
        """Stop ticking, let in-flight jobs finish, release the rest."""
        logger.info("Shutting down reminder service...")
        self.scheduler.stop(timeout)
        for worker in self.workers:
            worker.stop()

        deadline = time.monotonic() + timeout
        for thread in self._threads:
            thread.join(max(deadline - time.monotonic(), 0))

        for worker, thread in zip(self.workers, self._threads):
            job = worker.current_job
            if thread.is_alive() and job is not None:
                logger.warning("Worker %d did not finish job %s in time", worker.worker_id, job.key)
                self.queue.release(job)

        self.workers = []
        self._threads = []
        logger.info("Reminder service shut down")

    def get_queue_stats(self) -> QueueStats:
        return self.monitor.get_stats()

    def trigger_manual_reminder(self, event_id: str) -> List[Job]:
        return self.monitor.send_manual_reminder(event_id)
