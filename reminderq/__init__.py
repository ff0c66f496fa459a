"""Interview reminder scheduling and delivery."""

from .config import Settings
from .models import Event, Job, JobState, QueueStats, RecipientRole
from .queue import JobQueue
from .service import ReminderService

__all__ = [
    "Settings",
    "Event",
    "Job",
    "JobState",
    "QueueStats",
    "RecipientRole",
    "JobQueue",
    "ReminderService",
]
