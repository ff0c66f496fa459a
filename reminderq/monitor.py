"""Operational view of the reminder queue."""

import logging
from typing import List

from .keys import manual_job_key
from .models import Job, QueueStats, RecipientRole, ReminderPayload
from .queue import JobQueue

logger = logging.getLogger(__name__)


class MonitoringFacade:
    def __init__(self, queue: JobQueue):
        self.queue = queue

    def get_stats(self) -> QueueStats:
        """Job counts per state at call time."""
        return self.queue.stats()

    def send_manual_reminder(self, event_id: str) -> List[Job]:
        """Enqueue a reminder for every recipient of an event.

        Keys are unique per call, so nothing is deduplicated and the
        already-sent flag is not consulted. The worker still skips cancelled
        or missing events.
        """
        jobs = []
        for role in RecipientRole:
            job = self.queue.enqueue(
                manual_job_key(event_id, role),
                ReminderPayload(event_id=event_id, role=role, manual=True),
            )
            if job is not None:
                jobs.append(job)
        logger.info("Manual reminder scheduled for event %s", event_id)
        return jobs
