# utils/ttl.py
from datetime import datetime, timedelta
from typing import Callable, Optional

from db import utcnow

SOON = "will be removed soon"


class TTLCalculator:
    """
    Countdown from a completed record's ``updated_at`` to the moment it becomes
    eligible for removal. Pure projection: nothing is stored or deleted here.

    The UI recomputes it on a fixed cadence (once a minute).
    """

    def __init__(self, ttl: timedelta = timedelta(hours=24), clock: Callable[[], datetime] = utcnow):
        self.ttl = ttl
        self._clock = clock

    def delete_at(self, updated_at: datetime) -> datetime:
        return updated_at + self.ttl

    def remaining(self, updated_at: datetime, now: Optional[datetime] = None) -> timedelta:
        now = now or self._clock()
        left = self.delete_at(updated_at) - now
        return max(left, timedelta(0))

    def is_expired(self, updated_at: datetime, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        return self.delete_at(updated_at) <= now

    def format_remaining(self, updated_at: datetime, now: Optional[datetime] = None) -> str:
        left = self.remaining(updated_at, now)
        total_minutes = int(left.total_seconds() // 60)
        hours, minutes = divmod(total_minutes, 60)
        if hours > 0:
            return f"{hours}h {minutes}m left"
        if minutes > 0:
            return f"{minutes}m left"
        return SOON

    def label_for(self, record: dict, now: Optional[datetime] = None) -> Optional[str]:
        """Countdown text for a status dict, or None when the item is not completed."""
        if not record.get("is_completed") or record.get("updated_at") is None:
            return None
        return self.format_remaining(record["updated_at"], now)
