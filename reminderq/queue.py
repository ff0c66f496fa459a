"""Reminder job queue."""

import logging
import os
import socket
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .errors import JobNotFoundError
from .models import (
    PENDING_STATES,
    EnqueueOptions,
    Job,
    JobResult,
    JobState,
    QueuePolicy,
    QueueStats,
    ReminderPayload,
    utcnow,
)
from .storage import Storage

logger = logging.getLogger(__name__)


class JobQueue:
    """Manages job queue operations.

    Every state transition happens under the storage lock, so enqueue
    deduplication and job claiming are atomic across worker threads and
    processes sharing the same data directory.

    A claimed job carries the claiming queue's ``owner`` and a lease. Only
    jobs whose lease has run out are treated as stalled, so a second process
    on the same data directory never takes over a job that is still running.
    """

    def __init__(
        self,
        storage: Storage,
        policy: Optional[QueuePolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        owner: Optional[str] = None,
    ):
        self.storage = storage
        self.policy = policy or QueuePolicy()
        self.clock = clock
        self.owner = owner or f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"

    def enqueue(
        self,
        key: str,
        payload: ReminderPayload,
        options: Optional[EnqueueOptions] = None,
    ) -> Optional[Job]:
        """Add a job unless one with the same key is still pending.

        Returns the new job, or None when the call was a duplicate.
        """
        options = options or EnqueueOptions()
        now = self.clock()
        with self.storage.lock.hold():
            jobs = self.storage.load_jobs()
            for existing in jobs:
                if existing.key == key and existing.state in PENDING_STATES:
                    logger.debug("Job %s already %s, skipping enqueue", key, existing.state.value)
                    return None
            # A finished job with the same key is superseded
            jobs = [existing for existing in jobs if existing.key != key]

            job = Job(
                key=key,
                payload=payload,
                max_attempts=options.max_attempts or self.policy.retry.max_attempts,
                created_at=now,
                updated_at=now,
            )
            if options.delay > 0:
                job.state = JobState.DELAYED
                job.next_eligible_at = now + timedelta(seconds=options.delay)
            jobs.append(job)
            self.storage.save_jobs(jobs)

        logger.info("Enqueued job %s", key)
        return job

    def claim_next(self) -> Optional[Job]:
        """Move the next eligible job to active and return it.

        Stalled jobs found along the way are put back to waiting first.
        """
        now = self.clock()
        with self.storage.lock.hold():
            jobs = self.storage.load_jobs()
            changed = bool(self._reset_stalled(jobs, now))
            for job in jobs:
                if job.state == JobState.DELAYED and (
                    job.next_eligible_at is None or job.next_eligible_at <= now
                ):
                    job.state = JobState.WAITING
                    job.updated_at = now
                    changed = True

            waiting = [job for job in jobs if job.state == JobState.WAITING]
            claimed = None
            if waiting:
                claimed = min(waiting, key=lambda job: job.created_at)
                claimed.state = JobState.ACTIVE
                claimed.attempts += 1
                claimed.next_eligible_at = None
                claimed.claimed_by = self.owner
                claimed.lease_expires_at = now + timedelta(seconds=self.policy.lease_seconds)
                claimed.updated_at = now
                changed = True

            if changed:
                self.storage.save_jobs(jobs)
        return claimed

    def mark_completed(self, job: Job, result: JobResult) -> None:
        """Mark a job as successfully completed."""
        now = self.clock()
        job.state = JobState.COMPLETED
        job.result = result
        job.error_message = None
        job.updated_at = now
        job.finished_at = now
        _clear_lease(job)
        with self.storage.lock.hold():
            self.storage.update_job(job)
            self._prune()
        logger.info("Job %s completed: %s", job.key, result.model_dump(exclude_none=True))

    def mark_failed(self, job: Job, error_message: str) -> None:
        """Record a failed attempt and schedule a retry if any remain."""
        now = self.clock()
        job.error_message = error_message
        job.updated_at = now
        _clear_lease(job)

        if job.attempts >= job.max_attempts:
            job.state = JobState.FAILED
            job.finished_at = now
            job.next_eligible_at = None
            logger.error(
                "Job %s failed permanently after %d attempts: %s",
                job.key, job.attempts, error_message,
            )
        else:
            delay_seconds = self.policy.retry.delay_for(job.attempts)
            job.state = JobState.DELAYED
            job.next_eligible_at = now + timedelta(seconds=delay_seconds)
            logger.warning(
                "Job %s failed (attempt %d/%d), retrying in %ss: %s",
                job.key, job.attempts, job.max_attempts, delay_seconds, error_message,
            )

        with self.storage.lock.hold():
            self.storage.update_job(job)
            if job.state == JobState.FAILED:
                self._prune()

    def release(self, job: Job) -> None:
        """Put an active job back to waiting without counting the attempt."""
        with self.storage.lock.hold():
            stored = self.storage.get_job(job.key)
            if stored is None:
                raise JobNotFoundError(job.key)
            if stored.state != JobState.ACTIVE:
                return
            stored.state = JobState.WAITING
            stored.attempts = max(stored.attempts - 1, 0)
            stored.updated_at = self.clock()
            _clear_lease(stored)
            self.storage.update_job(stored)
        logger.info("Released job %s back to the queue", job.key)

    def recover_active(self) -> List[Job]:
        """Return active jobs whose lease has expired to waiting.

        A job without a lease was claimed by an older process and counts as
        expired.
        """
        now = self.clock()
        with self.storage.lock.hold():
            jobs = self.storage.load_jobs()
            stalled = self._reset_stalled(jobs, now)
            if stalled:
                self.storage.save_jobs(jobs)
        return stalled

    def _reset_stalled(self, jobs: List[Job], now: datetime) -> List[Job]:
        stalled = [
            job
            for job in jobs
            if job.state == JobState.ACTIVE
            and (job.lease_expires_at is None or job.lease_expires_at <= now)
        ]
        for job in stalled:
            logger.warning("Job %s stalled (claimed by %s), moved back to waiting", job.key, job.claimed_by)
            job.state = JobState.WAITING
            job.attempts = max(job.attempts - 1, 0)
            job.updated_at = now
            _clear_lease(job)
        return stalled

    def _prune(self) -> None:
        """Drop the oldest finished jobs beyond the retention caps."""
        retention = self.policy.retention
        with self.storage.lock.hold():
            jobs = self.storage.load_jobs()
            doomed = set()
            for state, keep in (
                (JobState.COMPLETED, retention.keep_completed),
                (JobState.FAILED, retention.keep_failed),
            ):
                finished = sorted(
                    (job for job in jobs if job.state == state),
                    key=lambda job: job.finished_at or job.updated_at,
                )
                excess = len(finished) - keep
                if excess > 0:
                    doomed.update(job.key for job in finished[:excess])
            if doomed:
                self.storage.save_jobs([job for job in jobs if job.key not in doomed])
                logger.debug("Pruned %d finished jobs", len(doomed))

    def update_result(self, job: Job, result: JobResult) -> None:
        """Replace the stored result of a finished job."""
        job.result = result
        with self.storage.lock.hold():
            stored = self.storage.get_job(job.key)
            if stored is None:
                raise JobNotFoundError(job.key)
            stored.result = result
            self.storage.update_job(stored)

    def pending_for_event(self, event_id: str, exclude_key: Optional[str] = None) -> List[Job]:
        """Jobs for an event that have not finished yet."""
        return [
            job
            for job in self.storage.load_jobs()
            if job.payload.event_id == event_id
            and job.state in PENDING_STATES
            and job.key != exclude_key
        ]

    def get_job(self, key: str) -> Job:
        job = self.storage.get_job(key)
        if job is None:
            raise JobNotFoundError(key)
        return job

    def get_jobs_by_state(self, state: JobState) -> List[Job]:
        """Get all jobs in a specific state."""
        return self.storage.get_jobs_by_state(state)

    def get_all_jobs(self) -> List[Job]:
        """Get all jobs."""
        return self.storage.load_jobs()

    def stats(self) -> QueueStats:
        """Per-state job counts."""
        return self.storage.get_stats()


def _clear_lease(job: Job) -> None:
    job.claimed_by = None
    job.lease_expires_at = None
