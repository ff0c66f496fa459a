"""Data models for events, reminder jobs and queue policy."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class JobState(str, Enum):
    """Job lifecycle states."""
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"


PENDING_STATES = (JobState.WAITING, JobState.ACTIVE, JobState.DELAYED)


class RecipientRole(str, Enum):
    """Who a reminder is addressed to."""
    SUBJECT = "subject"  # candidate
    COUNTERPART = "counterpart"  # interviewer


class EventStatus(str, Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class Modality(str, Enum):
    PHONE = "phone"
    VIDEO = "video"
    ONSITE = "onsite"


class SkipReason(str, Enum):
    """Why a job finished without sending anything."""
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"
    ALREADY_SENT = "already_sent"


class Recipient(BaseModel):
    """A person who can receive a reminder."""
    id: str
    email: str
    full_name: Optional[str] = None
    nickname: Optional[str] = None
    locale: Optional[str] = None
    timezone: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.nickname or self.email


class Event(BaseModel):
    """A scheduled interview."""
    id: str
    scheduled_at: datetime
    status: EventStatus = EventStatus.SCHEDULED
    reminder_sent: bool = False
    subject: Recipient
    counterpart: Recipient
    duration_minutes: int = 60
    modality: Modality = Modality.VIDEO
    location: Optional[str] = None
    meeting_url: Optional[str] = None
    position: Optional[str] = None

    @field_validator("scheduled_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def recipient_for(self, role: RecipientRole) -> Recipient:
        if role is RecipientRole.SUBJECT:
            return self.subject
        if role is RecipientRole.COUNTERPART:
            return self.counterpart
        raise ValueError(f"Unknown recipient role: {role}")

    def other_party(self, role: RecipientRole) -> Recipient:
        if role is RecipientRole.SUBJECT:
            return self.counterpart
        if role is RecipientRole.COUNTERPART:
            return self.subject
        raise ValueError(f"Unknown recipient role: {role}")


class ReminderPayload(BaseModel):
    """What a job asks the worker to do."""
    event_id: str
    role: RecipientRole
    manual: bool = False


class JobResult(BaseModel):
    """Outcome of a successfully finished job."""
    delivered: bool
    reason: Optional[SkipReason] = None
    recipient: Optional[str] = None
    subject: Optional[str] = None
    flag_error: Optional[str] = None

    @classmethod
    def skipped(cls, reason: SkipReason) -> "JobResult":
        return cls(delivered=False, reason=reason)


class Job(BaseModel):
    """A queued reminder job."""
    key: str
    payload: ReminderPayload
    state: JobState = JobState.WAITING
    attempts: int = 0
    max_attempts: int = 3
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    next_eligible_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result: Optional[JobResult] = None
    claimed_by: Optional[str] = None
    lease_expires_at: Optional[datetime] = None

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempts, 0)


class AuditRecord(BaseModel):
    """Trace of a dispatched reminder."""
    entity_id: str
    recipient: str
    subject: str
    role: RecipientRole
    type: str = "INTERVIEW_REMINDER"
    actor: str = "InterviewReminderJob"
    sent_at: datetime = Field(default_factory=utcnow)


class InAppNotification(BaseModel):
    """Notification shown to a user inside the host application."""
    user_id: str
    title: str
    message: str
    link: str
    type: str = "INTERVIEW_REMINDER"
    created_at: datetime = Field(default_factory=utcnow)


class QueueStats(BaseModel):
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0


class RetryPolicy(BaseModel):
    """Retry configuration."""
    max_attempts: int = 3
    backoff_type: Literal["exponential", "fixed"] = "exponential"
    backoff_delay: float = 60.0  # seconds before the first retry

    def delay_for(self, attempts: int) -> float:
        """Seconds to wait after the given number of failed attempts."""
        if self.backoff_type == "fixed":
            return self.backoff_delay
        return self.backoff_delay * (2 ** (attempts - 1))


class RetentionPolicy(BaseModel):
    """How many finished jobs to keep around for inspection."""
    keep_completed: int = 100
    keep_failed: int = 50


class QueuePolicy(BaseModel):
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy)
    lease_seconds: float = 300.0  # how long a claim holds before the job counts as stalled


class EnqueueOptions(BaseModel):
    """Per-job overrides of the queue policy."""
    max_attempts: Optional[int] = None
    delay: float = 0.0  # seconds before the job becomes eligible
