"""Periodic producer that enqueues reminder jobs."""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, NamedTuple, Optional

from .keys import scheduled_job_key
from .models import EventStatus, RecipientRole, ReminderPayload, utcnow
from .queue import JobQueue
from .sources import EventStore
from .window import reminder_window

logger = logging.getLogger(__name__)


class TickReport(NamedTuple):
    events: int
    enqueued: int
    skipped_duplicates: int


class ReminderScheduler:
    """Finds events that need a reminder and enqueues one job per recipient."""

    def __init__(
        self,
        queue: JobQueue,
        events: EventStore,
        interval: float = 3600,
        window_low_hours: float = 23,
        window_high_hours: float = 25,
        lead_time_hours: float = 24,
        tick_timeout: float = 300,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.queue = queue
        self.events = events
        self.interval = interval
        self.window_low_hours = window_low_hours
        self.window_high_hours = window_high_hours
        self.lead_time_hours = lead_time_hours
        self.tick_timeout = tick_timeout
        self.clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Run one scheduling pass. Errors propagate to the caller."""
        now = now or self.clock()
        window = reminder_window(
            now, self.window_low_hours, self.window_high_hours, self.lead_time_hours
        )
        logger.info("Starting reminder scheduling for %s - %s", window.start, window.end)

        upcoming = self.events.find_events_in_window(
            EventStatus.SCHEDULED, False, window.start, window.end
        )
        logger.info("Found %d events to remind", len(upcoming))

        enqueued = skipped = 0
        for event in upcoming:
            for role in RecipientRole:
                job = self.queue.enqueue(
                    scheduled_job_key(event.id, role),
                    ReminderPayload(event_id=event.id, role=role),
                )
                if job is None:
                    skipped += 1
                else:
                    enqueued += 1
            logger.info("Scheduled reminders for event %s", event.id)

        logger.info("Reminder scheduling completed: %d enqueued, %d duplicates", enqueued, skipped)
        return TickReport(len(upcoming), enqueued, skipped)

    def safe_tick(self) -> Optional[TickReport]:
        """Run a tick, logging instead of raising."""
        try:
            return self.tick()
        except Exception:
            logger.exception("Reminder scheduling tick failed")
            return None

    def bounded_tick(self) -> bool:
        """Run a tick in its own thread and wait at most ``tick_timeout`` for it.

        Returns False when the tick was still running at the deadline. It is
        left to finish in the background and may overlap later ticks; dedup by
        key keeps that from enqueueing duplicates.
        """
        thread = threading.Thread(target=self.safe_tick, name="reminder-tick", daemon=True)
        thread.start()
        thread.join(self.tick_timeout)
        if thread.is_alive():
            logger.warning(
                "Scheduling tick still running after %ss, continuing without it", self.tick_timeout
            )
            return False
        return True

    def run(self) -> None:
        """Tick immediately, then every ``interval`` seconds until stopped.

        Ticks are scheduled against a monotonic deadline, so the period does
        not stretch by the duration of each tick. Slots missed while a tick
        ran long are dropped rather than fired in a burst.
        """
        logger.info("Reminder scheduler started (runs every %ss)", self.interval)
        next_run = time.monotonic()
        while not self._stop.is_set():
            self.bounded_tick()
            next_run += self.interval
            now = time.monotonic()
            if next_run < now:
                next_run = now
            self._stop.wait(next_run - now)
        logger.info("Reminder scheduler stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="reminder-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
