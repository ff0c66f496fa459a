"""Persistent job storage using JSON files."""

import json
import os
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .errors import JobNotFoundError, StorageError
from .models import Job, JobState, QueueStats

# Handle platform-specific locking
if sys.platform == "win32":
    import msvcrt
else:
    import fcntl


def write_json(file_path: Path, data: Any) -> None:
    """Write data to JSON file with atomic write."""
    temp_file = file_path.with_name(f"{file_path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    with open(temp_file, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str, ensure_ascii=False)
    temp_file.replace(file_path)


def read_json(file_path: Path, default: Any) -> Any:
    """Read JSON file, returning ``default`` when it does not exist."""
    if not file_path.exists():
        return default
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise StorageError(f"Corrupt storage file {file_path}: {e}") from e


class FileLock:
    """Exclusive lock shared by threads of this process and by other processes.

    Re-entrant within a thread; only the outermost acquisition touches the
    lock file.
    """

    def __init__(self, path: Path):
        self.path = path
        self._thread_lock = threading.RLock()
        self._depth = 0
        self._fd: Optional[int] = None

    def _acquire_file(self) -> int:
        fd = os.open(str(self.path), os.O_CREAT | os.O_RDWR, 0o644)
        try:
            if sys.platform == "win32":
                msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
            else:
                fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError:
            os.close(fd)
            raise
        return fd

    def _release_file(self, fd: int) -> None:
        try:
            if sys.platform == "win32":
                os.lseek(fd, 0, os.SEEK_SET)
                msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    @contextmanager
    def hold(self) -> Iterator[None]:
        with self._thread_lock:
            if self._depth == 0:
                self._fd = self._acquire_file()
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0 and self._fd is not None:
                    fd, self._fd = self._fd, None
                    self._release_file(fd)


class Storage:
    """File-based storage for jobs with locking."""

    def __init__(self, data_dir: str = ".reminderq"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.jobs_file = self.data_dir / "jobs.json"
        self.lock = FileLock(self.data_dir / "queue.lock")

        # Initialize files if they don't exist
        with self.lock.hold():
            if not self.jobs_file.exists():
                write_json(self.jobs_file, [])

    def load_jobs(self) -> List[Job]:
        """Read every stored job."""
        return [Job(**job_data) for job_data in read_json(self.jobs_file, [])]

    def save_jobs(self, jobs: List[Job]) -> None:
        """Replace the stored job list. Callers must hold ``self.lock``."""
        write_json(self.jobs_file, [job.model_dump(mode="json") for job in jobs])

    def get_job(self, key: str) -> Optional[Job]:
        """Get a job by key."""
        for job in self.load_jobs():
            if job.key == key:
                return job
        return None

    def update_job(self, job: Job) -> None:
        """Update an existing job."""
        with self.lock.hold():
            jobs = self.load_jobs()
            for i, stored in enumerate(jobs):
                if stored.key == job.key:
                    jobs[i] = job
                    self.save_jobs(jobs)
                    return
        raise JobNotFoundError(job.key)

    def get_jobs_by_state(self, state: JobState) -> List[Job]:
        """Get all jobs in a specific state."""
        return [job for job in self.load_jobs() if job.state == state]

    def get_stats(self) -> QueueStats:
        """Get job counts per state."""
        counts: Dict[str, int] = {state.value: 0 for state in JobState}
        for job_data in read_json(self.jobs_file, []):
            state = job_data.get("state", JobState.WAITING.value)
            if state in counts:
                counts[state] += 1
        return QueueStats(**counts)
