"""Summary statistics over reconciled benefit snapshots."""
from datetime import datetime

from app.schemas.benefit import BenefitSnapshot, Stats
from app.services.benefit_periods import get_reference_date
from app.services.benefit_usage import is_amount_complete


def calculate_stats(
    snapshots: list[BenefitSnapshot],
    year: int | None = None,
    *,
    now: datetime,
) -> Stats:
    """Fold snapshots into completed/pending/missed counts and value totals.

    Every period that has started lands in exactly one of the completed,
    pending or missed buckets; periods that have not started are not counted.
    """
    reference = get_reference_date(year, now)
    stats = Stats(total_benefits=len(snapshots))

    for snapshot in snapshots:
        stats.total_value += snapshot.credit_amount
        stats.used_value += snapshot.current_used

        if snapshot.periods:
            segment_value = snapshot.segment_value
            for period in snapshot.periods:
                is_future = reference < period.start_date
                is_past = reference > period.end_date
                is_current = not is_future and not is_past
                is_complete = period.status == "completed" or is_amount_complete(period.used_amount, segment_value)

                if not is_future:
                    stats.ytd_total_periods += 1
                    if is_complete:
                        stats.ytd_completed_periods += 1
                    elif is_past:
                        stats.missed_count += 1
                    else:
                        stats.pending_count += 1

                if is_current and is_complete:
                    stats.current_period_completed_count += 1
            continue

        is_complete = snapshot.status == "completed" or is_amount_complete(
            snapshot.current_used, snapshot.credit_amount
        )
        has_started = reference >= snapshot.effective_start_date
        is_past = reference > snapshot.effective_end_date

        if not has_started:
            continue

        stats.ytd_total_periods += 1
        if is_complete:
            stats.ytd_completed_periods += 1
            if not is_past:
                stats.current_period_completed_count += 1
        elif is_past:
            stats.missed_count += 1
        else:
            stats.pending_count += 1

    return stats
