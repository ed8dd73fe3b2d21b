"""Benefit period and calendar arithmetic."""
import math
from datetime import date, datetime, time, timedelta, timezone

from dateutil.relativedelta import relativedelta

CADENCE_PERIOD_PREFIXES = {
    "monthly": "m",
    "quarterly": "q",
    "semiannual": "h",
}


def get_period_boundaries(
    cadence: str,
    reference_date: date,
) -> tuple[date, date]:
    """Calculate the start and end dates (inclusive) of the period containing a date.

    Args:
        cadence: monthly, quarterly, semiannual or annual
        reference_date: The date to find the period for

    Returns:
        Tuple of (period_start, period_end)
    """
    if cadence == "monthly":
        # Month containing reference_date
        start = reference_date.replace(day=1)
        end = (start + relativedelta(months=1)) - timedelta(days=1)

    elif cadence == "quarterly":
        # Q1: Jan-Mar, Q2: Apr-Jun, Q3: Jul-Sep, Q4: Oct-Dec
        quarter = (reference_date.month - 1) // 3
        start_month = quarter * 3 + 1
        start = date(reference_date.year, start_month, 1)
        end = (start + relativedelta(months=3)) - timedelta(days=1)

    elif cadence == "semiannual":
        # H1: Jan-Jun, H2: Jul-Dec
        if reference_date.month <= 6:
            start = date(reference_date.year, 1, 1)
            end = date(reference_date.year, 6, 30)
        else:
            start = date(reference_date.year, 7, 1)
            end = date(reference_date.year, 12, 31)

    elif cadence == "annual":
        start = date(reference_date.year, 1, 1)
        end = date(reference_date.year, 12, 31)

    else:
        raise ValueError(f"Unknown cadence: {cadence}")

    return start, end


def generate_periods(cadence: str, cycle_start: date, cycle_end: date) -> list[tuple[str, date, date]]:
    """Split a cycle into consecutive calendar periods for the cadence.

    Annual cycles are not split. Ids are ``m01``..``m12``, ``q1``..``q4``
    and ``h1``..``h2``, numbered from the start of the cycle.
    """
    prefix = CADENCE_PERIOD_PREFIXES.get(cadence)
    if prefix is None:
        if cadence != "annual":
            raise ValueError(f"Unknown cadence: {cadence}")
        return []

    periods = []
    cursor = cycle_start
    while cursor <= cycle_end:
        start, end = get_period_boundaries(cadence, cursor)
        start = max(start, cycle_start)
        end = min(end, cycle_end)
        number = len(periods) + 1
        period_id = f"{prefix}{number:02d}" if cadence == "monthly" else f"{prefix}{number}"
        periods.append((period_id, start, end))
        cursor = end + timedelta(days=1)
    return periods


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def end_of_day(value: date) -> datetime:
    return datetime.combine(value, time(23, 59, 59), tzinfo=timezone.utc)


def year_bounds(year: int) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` bounds of a calendar year in UTC."""
    return (
        datetime(year, 1, 1, tzinfo=timezone.utc),
        datetime(year + 1, 1, 1, tzinfo=timezone.utc),
    )


def align_to_year(value: datetime, year: int, anchor_year: int) -> datetime:
    """Shift a date so that ``anchor_year`` lands on ``year``.

    Month, day and time of day are preserved (Feb 29 clamps to Feb 28).
    Shifting every date of a cycle by the same offset keeps cycles that
    span a year boundary intact.
    """
    return value + relativedelta(years=year - anchor_year)


def get_reference_date(year: int | None, now: datetime) -> datetime:
    """Instant against which a year's benefits are evaluated.

    Past years are treated as fully elapsed, future years as not yet begun.
    """
    if year is None:
        return now
    if year > now.year:
        return year_bounds(year)[0]
    if year < now.year:
        return year_bounds(year)[1]
    return now


def get_time_progress(start: datetime, end: datetime, now: datetime) -> float:
    """Percentage of the interval elapsed at ``now`` (0-100)."""
    if now <= start:
        return 0.0
    if now >= end:
        return 100.0
    return (now - start) / (end - start) * 100


def days_remaining_in_period(period_end: datetime, now: datetime) -> int:
    """Calculate whole days remaining in a benefit period (rounded up)."""
    remaining = (period_end - now).total_seconds() / 86400
    return max(0, math.ceil(remaining))


def is_period_expiring_soon(period_end: datetime, now: datetime, threshold_days: int = 7) -> bool:
    """Check if a benefit period is expiring soon."""
    return now <= period_end and days_remaining_in_period(period_end, now) <= threshold_days
