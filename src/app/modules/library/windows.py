"""
Sweep Window Calculator

Turns a reference instant into the half-open date windows used to classify
open loans. Boundaries are computed at day granularity (midnight of "today"
in the reference instant's timezone), so repeated or irregular runs on the
same day always see the same windows.

    newly overdue  (-inf,     today)
    due today      [today,    today + 1 day)
    due soon       [today+3d, today + 4 days)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from app.core.config import settings

DUE_SOON_DAYS = 3


@dataclass(frozen=True)
class DateWindow:
    """Half-open range [start, end). A start of None means unbounded."""

    start: datetime | None
    end: datetime

    def contains(self, instant: datetime) -> bool:
        if self.start is not None and instant < self.start:
            return False
        return instant < self.end


@dataclass(frozen=True)
class SweepWindows:
    """All windows derived from one reference instant."""

    today: datetime
    newly_overdue: DateWindow
    due_today: DateWindow
    due_soon: DateWindow


def truncate_to_midnight(now: datetime) -> datetime:
    """Drop the time of day, keeping the date and tzinfo."""
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def compute_windows(now: datetime) -> SweepWindows:
    """
    Compute the sweep windows for a reference instant.

    Pure function of ``now``. Day arithmetic is done on wall-clock dates, so
    the windows stay aligned to midnight across DST changes.

    Args:
        now: The reference instant (aware or naive)

    Returns:
        SweepWindows for the day containing ``now``
    """
    today = truncate_to_midnight(now)

    return SweepWindows(
        today=today,
        newly_overdue=DateWindow(start=None, end=today),
        due_today=DateWindow(start=today, end=today + timedelta(days=1)),
        due_soon=DateWindow(
            start=today + timedelta(days=DUE_SOON_DAYS),
            end=today + timedelta(days=DUE_SOON_DAYS + 1),
        ),
    )


def current_time() -> datetime:
    """Current instant in the configured library timezone."""
    return datetime.now(ZoneInfo(settings.library_timezone))
