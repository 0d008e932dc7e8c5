"""Cron schedule helpers for reporting the next scheduled sync."""

from datetime import datetime, timedelta, timezone
from typing import Optional


def next_cron_execution(schedule: str, now: Optional[datetime] = None) -> str:
    """Return the ISO timestamp of the next run of a daily ``M H * * *`` schedule (UTC)."""
    parts = schedule.strip().split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron schedule: {schedule}")

    try:
        minute = int(parts[0])
        hour = int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid cron schedule: {schedule}") from None
    if not (0 <= minute <= 59 and 0 <= hour <= 23):
        raise ValueError(f"Invalid cron schedule: {schedule}")

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)

    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate.isoformat().replace("+00:00", "Z")
