"""Exceptions raised by the reminder pipeline."""


class ReminderError(Exception):
    """Base class for reminder pipeline errors."""


class StorageError(ReminderError):
    """A storage file could not be read or parsed."""


class JobNotFoundError(ReminderError):
    """No job with the given key exists in the queue."""

    def __init__(self, key: str):
        super().__init__(f"Job {key} not found")
        self.key = key


class DispatchError(ReminderError):
    """The notification transport failed to send a reminder."""


class DispatchTimeout(DispatchError):
    """The notification transport did not answer in time."""
