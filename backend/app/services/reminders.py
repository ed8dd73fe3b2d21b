"""Reminders for benefits about to lapse unused."""
from datetime import datetime, timedelta

from app.schemas.benefit import BenefitSnapshot, UpcomingExpiration
from app.services.benefit_periods import days_remaining_in_period, is_period_expiring_soon


def get_upcoming_expirations(
    snapshots: list[BenefitSnapshot],
    *,
    now: datetime,
    days: int = 30,
    include_ignored: bool = False,
) -> list[UpcomingExpiration]:
    """Pending benefits whose current window ends within ``days``, soonest first.

    For period-based benefits the window is the current period; otherwise it
    is the benefit's own effective range.
    """
    cutoff = now + timedelta(days=days)

    expiring = []
    for snapshot in snapshots:
        if snapshot.ignored and not include_ignored:
            continue

        if snapshot.periods:
            current = next((p for p in snapshot.periods if p.is_current), None)
            if current is None or current.status != "pending":
                continue
            period_id = current.id
            end_date = current.end_date
            remaining = snapshot.segment_value - current.used_amount
        else:
            if snapshot.status != "pending" or not snapshot.has_started:
                continue
            period_id = None
            end_date = snapshot.effective_end_date
            remaining = snapshot.credit_amount - snapshot.current_used

        if not now < end_date <= cutoff:
            continue

        expiring.append(UpcomingExpiration(
            benefit_id=snapshot.id,
            card_id=snapshot.card_id,
            name=snapshot.name,
            period_id=period_id,
            end_date=end_date,
            remaining_value=round(max(remaining, 0), 2),
            days_remaining=days_remaining_in_period(end_date, now),
            urgent=is_period_expiring_soon(end_date, now),
        ))

    return sorted(expiring, key=lambda e: e.end_date)
