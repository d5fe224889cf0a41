"""Job keys: deterministic names for the period a pass covers."""

from datetime import date, datetime, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta

from fanout_jobs.config import PERIODS


def most_recent_week_end(today: date, week_end_weekday: int = 6) -> date:
    """
    Return the last day of the most recent fully elapsed week.

    A week ending today has not elapsed yet, so on the week-end day itself
    the previous week is returned.
    """
    days_back = (today.weekday() - week_end_weekday) % 7 or 7
    return today - relativedelta(days=days_back)


def compute_job_key(
    period: str,
    now: Optional[datetime] = None,
    week_end_weekday: int = 6,
) -> str:
    """
    Compute the key of the most recently fully elapsed period.

    Args:
        period: "daily", "weekly" or "monthly"
        now: Reference time (defaults to the current UTC time)
        week_end_weekday: Last weekday of a weekly period (0=Monday, 6=Sunday)

    Returns:
        "YYYY-MM-DD" for daily and weekly keys, "YYYY-MM" for monthly keys
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)

    today = now.date()

    if period == "daily":
        return (today - relativedelta(days=1)).isoformat()
    if period == "weekly":
        return most_recent_week_end(today, week_end_weekday).isoformat()
    if period == "monthly":
        return (today - relativedelta(months=1)).strftime("%Y-%m")

    raise ValueError(f"Unknown period {period!r}, expected one of {PERIODS}")
