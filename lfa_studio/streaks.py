# lfa_studio/streaks.py

from datetime import date, datetime, timezone


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes (e.g. read back from SQLite) are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _as_date(moment: datetime | date) -> date:
    if isinstance(moment, datetime):
        return as_utc(moment).date()
    return moment


def calendar_days_between(earlier: datetime | date, later: datetime | date) -> int:
    """Whole UTC calendar days from `earlier` to `later` (negative if `later` is before)."""
    return (_as_date(later) - _as_date(earlier)).days


def next_streak(current_streak: int, last_activity: datetime | date | None, now: datetime | date) -> int:
    """
    Streak after an activity at `now`:
      same day (or clock skew into the past) -> unchanged
      exactly one day later                  -> +1
      two or more days later                 -> restart at 1
    With no previous activity the streak starts at 1.
    """
    if last_activity is None:
        return 1
    gap = calendar_days_between(last_activity, now)
    if gap <= 0:
        return current_streak
    if gap == 1:
        return current_streak + 1
    return 1
