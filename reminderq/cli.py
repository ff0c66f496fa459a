"""CLI interface for reminderq."""

import json
import logging
import signal
import sys
import threading
from typing import Optional

import click
from pydantic import ValidationError

from .config import Settings
from .models import Event, JobState
from .service import ReminderService
from .sources import JsonEventStore


def get_settings() -> Settings:
    """Build settings and configure logging from them."""
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    return settings


@click.group()
@click.pass_context
def cli(ctx):
    """reminderq - Interview reminder scheduler"""
    ctx.obj = get_settings()


@cli.command()
@click.option("--workers", type=int, default=None, help="Number of worker threads")
@click.pass_obj
def run(settings: Settings, workers: Optional[int]):
    """Run the scheduler and workers until interrupted.

    Example:
        reminderq run --workers 3
    """
    if workers is not None and workers < 1:
        click.echo("✗ Workers must be at least 1", err=True)
        sys.exit(1)

    service = ReminderService(settings)
    stop = threading.Event()

    def _handle_shutdown(signum, frame):
        stop.set()

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    service.start(workers)
    click.echo("Reminder service running, press Ctrl+C to stop")
    while not stop.is_set():
        stop.wait(1)

    click.echo("\nShutting down...")
    service.shutdown()
    click.echo("Service stopped")


@cli.command()
@click.pass_obj
def tick(settings: Settings):
    """Run one scheduling pass now.

    Example:
        reminderq tick
    """
    service = ReminderService(settings)
    report = service.scheduler.tick()
    click.echo(
        f"✓ {report.events} event(s) found, {report.enqueued} job(s) enqueued, "
        f"{report.skipped_duplicates} duplicate(s) skipped"
    )


@cli.command()
@click.pass_obj
def status(settings: Settings):
    """Show queue statistics.

    Example:
        reminderq status
    """
    service = ReminderService(settings)
    stats = service.get_queue_stats()
    policy = settings.queue_policy()

    click.echo("\n" + "=" * 50)
    click.echo("Reminder Queue Status")
    click.echo("=" * 50)
    click.echo(f"  Waiting:      {stats.waiting}")
    click.echo(f"  Active:       {stats.active}")
    click.echo(f"  Delayed:      {stats.delayed}")
    click.echo(f"  Completed:    {stats.completed}")
    click.echo(f"  Failed:       {stats.failed}")
    click.echo("\nPolicy:")
    click.echo(f"  Max Attempts: {policy.retry.max_attempts}")
    click.echo(f"  Backoff:      {policy.retry.backoff_type}, {policy.retry.backoff_delay}s")
    click.echo(f"  Retention:    {policy.retention.keep_completed} completed, {policy.retention.keep_failed} failed")
    click.echo(f"  Job Lease:    {policy.lease_seconds}s")
    click.echo("=" * 50 + "\n")


@cli.command(name="list")
@click.option("--state", type=click.Choice([s.value for s in JobState]), help="Filter by state")
@click.option("--limit", default=10, help="Maximum jobs to display")
@click.pass_obj
def list_jobs(settings: Settings, state: Optional[str], limit: int):
    """List jobs by state.

    Example:
        reminderq list --state failed
    """
    service = ReminderService(settings)
    if state:
        jobs = service.queue.get_jobs_by_state(JobState(state))
    else:
        jobs = service.queue.get_all_jobs()

    jobs = jobs[:limit]

    if not jobs:
        click.echo("No jobs found")
        return

    click.echo(f"\n{'Key':<40} {'State':<10} {'Attempts':<9} {'Updated':<20}")
    click.echo("-" * 80)
    for job in jobs:
        updated = job.updated_at.strftime("%Y-%m-%d %H:%M:%S")
        click.echo(f"{job.key:<40} {job.state.value:<10} {job.attempts:<9} {updated:<20}")
        if job.error_message and job.state in (JobState.FAILED, JobState.DELAYED):
            click.echo(f"    {job.error_message[:76]}")
    click.echo()


@cli.command()
@click.argument("event_id")
@click.pass_obj
def remind(settings: Settings, event_id: str):
    """Send a reminder for an event now, regardless of earlier reminders.

    Example:
        reminderq remind E1
    """
    service = ReminderService(settings)
    jobs = service.trigger_manual_reminder(event_id)
    for job in jobs:
        click.echo(f"✓ Job {job.key} enqueued")


@cli.group()
def events():
    """Manage the local event store"""
    pass


@events.command(name="add")
@click.argument("event_json")
@click.pass_obj
def add_event(settings: Settings, event_json: str):
    """Add or replace an event.

    Example:
        reminderq events add '{"id":"E1","scheduled_at":"2026-10-20T10:00:00Z",
            "subject":{"id":"c1","email":"c@example.com"},
            "counterpart":{"id":"i1","email":"i@example.com"}}'
    """
    try:
        event = Event(**json.loads(event_json))
    except json.JSONDecodeError as e:
        click.echo(f"✗ Invalid JSON: {e}", err=True)
        sys.exit(1)
    except ValidationError as e:
        click.echo(f"✗ Invalid event: {e}", err=True)
        sys.exit(1)

    JsonEventStore(settings.data_dir).add_event(event)
    click.echo(f"✓ Event {event.id} saved")


@events.command(name="list")
@click.pass_obj
def list_events(settings: Settings):
    """List events in the local store."""
    stored = JsonEventStore(settings.data_dir).all_events()
    if not stored:
        click.echo("No events found")
        return

    click.echo(f"\n{'ID':<20} {'Scheduled':<26} {'Status':<10} {'Reminded':<8}")
    click.echo("-" * 66)
    for event in sorted(stored, key=lambda e: e.scheduled_at):
        click.echo(
            f"{event.id:<20} {event.scheduled_at.isoformat():<26} "
            f"{event.status.value:<10} {'yes' if event.reminder_sent else 'no':<8}"
        )
    click.echo()


@cli.group()
def config():
    """Inspect configuration"""
    pass


@config.command()
@click.pass_obj
def show(settings: Settings):
    """Show current configuration.

    Example:
        REMINDERQ_MAX_ATTEMPTS=5 reminderq config show
    """
    click.echo("\nCurrent Configuration:")
    for name, value in settings.model_dump().items():
        click.echo(f"  {name.replace('_', '-')}: {value}")
    click.echo()


if __name__ == "__main__":
    cli()
