"""Worker that turns queued jobs into delivered reminders."""

import logging
import threading
from typing import Any, Callable, Optional

from .errors import DispatchError, DispatchTimeout, JobNotFoundError
from .models import (
    AuditRecord,
    EventStatus,
    InAppNotification,
    Job,
    JobResult,
    RecipientRole,
    SkipReason,
    utcnow,
)
from .queue import JobQueue
from .sources import AuditSink, EventStore, NotificationSink, NotificationTransport
from .templates import render_reminder

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], JobResult]
CompletionHook = Callable[[Job, JobResult], Optional[str]]


def call_with_timeout(func: Callable[..., Any], timeout: float, *args: Any) -> Any:
    """Run ``func`` in a helper thread and give up after ``timeout`` seconds.

    A call that times out keeps running in its daemon thread; its outcome is
    ignored.
    """
    outcome = {}

    def target():
        try:
            outcome["value"] = func(*args)
        except Exception as e:
            outcome["error"] = e

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    thread.join(timeout)
    if thread.is_alive():
        raise DispatchTimeout(f"Dispatch timed out after {timeout}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")


class ReminderHandler:
    """Processes a single reminder job."""

    def __init__(
        self,
        events: EventStore,
        transport: NotificationTransport,
        audit: AuditSink,
        dispatch_timeout: float = 30,
        default_timezone: str = "Asia/Tokyo",
        default_locale: str = "ja",
        sender_name: str = "PeopleBooster",
        queue: Optional[JobQueue] = None,
        notifications: Optional[NotificationSink] = None,
    ):
        self.events = events
        self.transport = transport
        self.audit = audit
        self.dispatch_timeout = dispatch_timeout
        self.default_timezone = default_timezone
        self.default_locale = default_locale
        self.sender_name = sender_name
        self.queue = queue
        self.notifications = notifications

    def __call__(self, job: Job) -> JobResult:
        return self.process(job)

    def process(self, job: Job) -> JobResult:
        payload = job.payload
        event_id = payload.event_id
        logger.info("Processing job %s for event %s, role: %s", job.key, event_id, payload.role.value)

        event = self.events.get_event(event_id)
        if event is None:
            logger.info("Event %s not found, skipping", event_id)
            return JobResult.skipped(SkipReason.NOT_FOUND)

        if event.status == EventStatus.CANCELLED:
            logger.info("Event %s is cancelled, skipping", event_id)
            return JobResult.skipped(SkipReason.CANCELLED)

        # Manual reminders are always delivered
        if event.reminder_sent and not payload.manual:
            logger.info("Reminder already sent for event %s, skipping", event_id)
            return JobResult.skipped(SkipReason.ALREADY_SENT)

        rendered = render_reminder(
            event,
            payload.role,
            default_timezone=self.default_timezone,
            default_locale=self.default_locale,
            sender=self.sender_name,
        )

        try:
            call_with_timeout(
                self.transport.send,
                self.dispatch_timeout,
                rendered.recipient_address,
                rendered.subject,
                rendered.body,
            )
        except DispatchError:
            raise
        except Exception as e:
            raise DispatchError(f"Failed to send reminder to {rendered.recipient_address}: {e}") from e
        sent_at = utcnow()

        result = JobResult(
            delivered=True,
            recipient=rendered.recipient_address,
            subject=rendered.subject,
        )

        try:
            self.audit.record(
                AuditRecord(
                    entity_id=event_id,
                    recipient=rendered.recipient_address,
                    subject=rendered.subject,
                    role=payload.role,
                    sent_at=sent_at,
                )
            )
        except Exception as e:
            logger.error("Failed to record audit entry for event %s: %s", event_id, e)

        if payload.role is RecipientRole.COUNTERPART and self.notifications is not None:
            try:
                self.notifications.notify(
                    InAppNotification(
                        user_id=event.counterpart.id,
                        title=rendered.subject,
                        message=rendered.summary,
                        link=f"/interviews/{event_id}",
                    )
                )
            except Exception as e:
                logger.error("Failed to create in-app notification for event %s: %s", event_id, e)

        logger.info("Successfully sent reminder for event %s to %s", event_id, rendered.recipient_address)
        return result

    def flag_event(self, job: Job, result: JobResult) -> Optional[str]:
        """Set the event's reminder-sent flag once its last pending job is done.

        Runs after ``job`` has been marked completed, so the last sibling to
        complete always sees every other sibling finished. A failing write is
        logged and returned; the reminder has already gone out and the job
        stays completed.
        """
        if not result.delivered:
            return None
        event_id = job.payload.event_id
        if self.queue is not None and self.queue.pending_for_event(event_id, exclude_key=job.key):
            logger.debug("Other reminders for event %s still pending, not flagging yet", event_id)
            return None
        try:
            self.events.set_reminder_sent(event_id)
        except Exception as e:
            logger.error("Sent reminder for event %s but could not flag it: %s", event_id, e)
            return str(e)
        return None


class Worker:
    """Executes jobs from the queue."""

    def __init__(
        self,
        queue: JobQueue,
        handler: Optional[JobHandler] = None,
        worker_id: int = 1,
        poll_interval: float = 1.0,
    ):
        self.queue = queue
        self.handler = handler
        self.on_completed: Optional[CompletionHook] = None
        self.worker_id = worker_id
        self.poll_interval = poll_interval
        self.current_job: Optional[Job] = None
        self._stop = threading.Event()

    def consume(self, handler: JobHandler, on_completed: Optional[CompletionHook] = None) -> None:
        """Register the function that processes each job.

        ``on_completed`` runs after a job is marked completed; a string it
        returns is stored on the job as ``result.flag_error``.
        """
        self.handler = handler
        self.on_completed = on_completed

    def stop(self) -> None:
        """Ask the loop to exit after the current job."""
        self._stop.set()
        if self.current_job:
            logger.info("[Worker %d] Finishing current job %s...", self.worker_id, self.current_job.key)

    @property
    def running(self) -> bool:
        return not self._stop.is_set()

    def run(self) -> None:
        """Run the worker loop."""
        logger.info("[Worker %d] Started", self.worker_id)
        while self.running:
            try:
                if not self.run_once():
                    self._stop.wait(self.poll_interval)
            except Exception:
                logger.exception("[Worker %d] Error", self.worker_id)
                self._stop.wait(self.poll_interval)

        logger.info("[Worker %d] Stopped", self.worker_id)

    def run_once(self) -> bool:
        """Process the next eligible job. Returns False when none was ready."""
        if self.handler is None:
            raise RuntimeError("No handler registered; call consume() first")
        job = self.queue.claim_next()
        if job is None:
            return False
        self._execute_job(job)
        return True

    def _execute_job(self, job: Job) -> None:
        """Execute a single job."""
        self.current_job = job
        try:
            try:
                result = self.handler(job)
            except Exception as e:
                self.queue.mark_failed(job, f"{type(e).__name__}: {e}")
            else:
                self.queue.mark_completed(job, result)
                self._after_completed(job, result)
        finally:
            self.current_job = None

    def _after_completed(self, job: Job, result: JobResult) -> None:
        if self.on_completed is None:
            return
        try:
            flag_error = self.on_completed(job, result)
        except Exception:
            logger.exception("[Worker %d] Completion hook failed for job %s", self.worker_id, job.key)
            return
        if flag_error:
            result.flag_error = flag_error
            try:
                self.queue.update_result(job, result)
            except JobNotFoundError:
                logger.warning(
                    "[Worker %d] Job %s was pruned before its flag error could be stored",
                    self.worker_id, job.key,
                )
