"""Reminder time window."""

from datetime import datetime, timedelta
from typing import NamedTuple


class TimeWindow(NamedTuple):
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def reminder_window(
    now: datetime,
    low_hours: float = 23,
    high_hours: float = 25,
    lead_hours: float = 24,
) -> TimeWindow:
    """Return ``[now + low_hours, now + high_hours]``.

    The band must straddle the lead time, otherwise an event could slip
    between two ticks without ever being inside a window.
    """
    if not low_hours < lead_hours < high_hours:
        raise ValueError(
            f"Window {low_hours}h-{high_hours}h does not straddle lead time {lead_hours}h"
        )
    return TimeWindow(now + timedelta(hours=low_hours), now + timedelta(hours=high_hours))
