"""Job key generation."""

import time
import uuid
from typing import Optional

from .models import RecipientRole


def scheduled_job_key(event_id: str, role: RecipientRole) -> str:
    """Deterministic key for a scheduler-originated job.

    The same (event, role) pair always maps to the same key, which is what
    lets the queue drop duplicate enqueues.
    """
    return f"{role.value}-{event_id}"


def manual_job_key(event_id: str, role: RecipientRole, nonce: Optional[str] = None) -> str:
    """Unique key for a manually triggered job.

    Never equal to a scheduled key or to another manual key.
    """
    millis = int(time.time() * 1000)
    nonce = nonce or uuid.uuid4().hex[:8]
    return f"manual-{role.value}-{event_id}-{millis}-{nonce}"
