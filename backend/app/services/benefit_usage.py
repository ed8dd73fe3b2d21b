"""Benefit usage reconciliation.

Combines an immutable ``BenefitDefinition`` with a user's mutable
``BenefitUserState`` into a ``BenefitSnapshot`` for a given year. The
function is pure: the caller supplies ``now`` and the snapshot is recomputed
on every read.

Resolution steps:

1. Year alignment of the cycle and its periods.
2. Reference instant (past years fully elapsed, future years not begun).
3. Attribution of transactions to the year, deduplicated, per-period first.
4. Per-period usage and status.
5. Back-fill of usage recorded before per-period tracking.
6. "Claimed elsewhere" for past years tracked under another year.
7. Overall status.
"""
from datetime import datetime
from itertools import chain

from app.schemas.benefit import (
    BenefitDefinition,
    BenefitSnapshot,
    BenefitUserState,
    PeriodUserState,
    ResolvedPeriod,
)
from app.schemas.transaction import StoredTransaction, TransactionKey
from app.schemas.types import BenefitStatus
from app.services.benefit_periods import (
    align_to_year,
    days_remaining_in_period,
    get_reference_date,
    get_time_progress,
    year_bounds,
)

# Half a cent, so float sums of period shares still reach their cap
AMOUNT_TOLERANCE = 0.005


def get_default_user_state(definition: BenefitDefinition) -> BenefitUserState:
    """State for a benefit the user has never touched."""
    return BenefitUserState(
        enrolled=not definition.enrollment_required,
        ignored=False,
        activation_acknowledged=not definition.enrollment_required,
        periods={period.id: PeriodUserState() for period in definition.periods} if definition.periods else None,
    )


def is_amount_complete(used: float, target: float) -> bool:
    return used + AMOUNT_TOLERANCE >= target


def _period_status(used: float, segment_value: float, end: datetime, reference: datetime) -> BenefitStatus:
    if is_amount_complete(used, segment_value):
        return "completed"
    if reference > end:
        return "missed"
    return "pending"


def _within(transactions: list[StoredTransaction], bounds: tuple[datetime, datetime] | None) -> list[StoredTransaction]:
    if bounds is None:
        return list(transactions)
    start, end = bounds
    return [tx for tx in transactions if start <= tx.date < end]


def _dedupe(transactions: list[StoredTransaction], seen: set[TransactionKey]) -> list[StoredTransaction]:
    unique = []
    for tx in transactions:
        if tx.key in seen:
            continue
        seen.add(tx.key)
        unique.append(tx)
    return unique


def _all_transactions(state: BenefitUserState) -> list[StoredTransaction]:
    period_txs = chain.from_iterable(p.transactions for p in (state.periods or {}).values())
    return [*period_txs, *state.transactions]


def _nearest_other_year(year: int, years: set[int]) -> int | None:
    """Nearest prior year, falling back to the nearest later one."""
    prior = [y for y in years if y < year]
    if prior:
        return max(prior)
    later = [y for y in years if y > year]
    return min(later) if later else None


def _resolve_period(
    period_id: str,
    start: datetime,
    end: datetime,
    used: float,
    transactions: list[StoredTransaction],
    segment_value: float,
    reference: datetime,
) -> ResolvedPeriod:
    is_current = start <= reference <= end
    return ResolvedPeriod(
        id=period_id,
        start_date=start,
        end_date=end,
        used_amount=used,
        status=_period_status(used, segment_value, end, reference),
        transactions=transactions,
        is_current=is_current,
        time_progress=get_time_progress(start, end, reference) if is_current else None,
        days_remaining=days_remaining_in_period(end, reference) if is_current else None,
    )


def backfill_periods(
    periods: list[ResolvedPeriod],
    total: float,
    segment_value: float,
    reference: datetime,
) -> list[ResolvedPeriod]:
    """Spread an aggregate usage total over periods, most recent first.

    Each period takes at most ``segment_value``. Periods ending at the same
    instant are filled in ascending id order.
    """
    by_id = sorted(periods, key=lambda p: p.id)
    # sorted() is stable with reverse=True, so id order survives ties
    fill_order = sorted(by_id, key=lambda p: p.end_date, reverse=True)

    filled: dict[str, ResolvedPeriod] = {}
    remaining = total
    for period in fill_order:
        if remaining <= 0:
            break
        used = min(remaining, segment_value)
        remaining -= used
        filled[period.id] = period.model_copy(update={
            "used_amount": used,
            "status": _period_status(used, segment_value, period.end_date, reference),
            "usage_inferred": True,
        })

    return [filled.get(period.id, period) for period in periods]


def _overall_period_status(periods: list[ResolvedPeriod]) -> BenefitStatus:
    statuses = {period.status for period in periods}
    if statuses == {"completed"}:
        return "completed"
    if "pending" in statuses:
        return "pending"
    return "missed"


def build_benefit_usage_snapshot(
    definition: BenefitDefinition,
    user_state: BenefitUserState | None = None,
    year: int | None = None,
    *,
    now: datetime,
) -> BenefitSnapshot:
    """Reconcile a definition with user state into a snapshot for ``year``.

    Without ``year`` the definition's own dates are used and transactions
    are not filtered. Never raises for missing state.
    """
    state = user_state if user_state is not None else get_default_user_state(definition)
    anchor_year = definition.start_date.year

    # Step 1: year alignment
    if year is None:
        start, end = definition.start_date, definition.end_date
        period_ranges = [(p.id, p.start_date, p.end_date) for p in definition.periods or ()]
    else:
        start = align_to_year(definition.start_date, year, anchor_year)
        end = align_to_year(definition.end_date, year, anchor_year)
        period_ranges = [
            (p.id, align_to_year(p.start_date, year, anchor_year), align_to_year(p.end_date, year, anchor_year))
            for p in definition.periods or ()
        ]

    # Step 2: reference instant
    reference = get_reference_date(year, now)
    bounds = year_bounds(year) if year is not None else None

    # Step 3: attribution, per-period data wins ties
    user_periods = state.periods or {}
    seen: set[TransactionKey] = set()
    period_txs: dict[str, list[StoredTransaction]] = {}
    for period_id, _, _ in period_ranges:
        recorded = user_periods.get(period_id)
        period_txs[period_id] = _dedupe(_within(recorded.transactions if recorded else [], bounds), seen)

    benefit_level = state.transactions
    if not period_ranges:
        # Period data recorded against a benefit without periods counts at benefit level
        benefit_level = [*chain.from_iterable(p.transactions for p in user_periods.values()), *benefit_level]
    benefit_txs = _dedupe(_within(benefit_level, bounds), seen)

    year_transactions = sorted(
        [*chain.from_iterable(period_txs.values()), *benefit_txs],
        key=lambda tx: tx.date,
    )

    # Legacy single-number usage only applies to the definition's own cycle
    has_recorded = bool(_all_transactions(state))
    legacy_allowed = not has_recorded and (year is None or year == anchor_year)

    # Step 4: per-period resolution
    segment_value = definition.segment_value
    periods: list[ResolvedPeriod] = []
    for period_id, period_start, period_end in period_ranges:
        txs = period_txs[period_id]
        used = sum(tx.amount for tx in txs)
        if legacy_allowed and period_id in user_periods:
            used = user_periods[period_id].used_amount
        periods.append(_resolve_period(period_id, period_start, period_end, used, txs, segment_value, reference))

    # Step 5: back-fill usage that predates per-period tracking
    unattributed = sum(tx.amount for tx in benefit_txs)
    if legacy_allowed:
        unattributed += state.current_used
    if periods and unattributed > 0 and not any(p.used_amount > 0 for p in periods):
        periods = backfill_periods(periods, unattributed, segment_value, reference)

    # Step 6: claimed elsewhere
    claimed_elsewhere_year = None
    if year is not None and year < now.year and not year_transactions:
        other_years = {tx.date.year for tx in _all_transactions(state)} - {year}
        claimed_elsewhere_year = _nearest_other_year(year, other_years)
    if claimed_elsewhere_year is not None:
        periods = [
            p.model_copy(update={"used_amount": segment_value, "status": "completed", "usage_inferred": True})
            for p in periods
        ]

    # Step 7: overall status
    has_started = reference >= start
    if periods:
        current_used = sum(p.used_amount for p in periods)
        status = _overall_period_status(periods)
    elif claimed_elsewhere_year is not None:
        current_used = definition.credit_amount
        status = "completed"
    else:
        current_used = unattributed
        if not has_started:
            status = "pending"
        elif is_amount_complete(current_used, definition.credit_amount):
            status = "completed"
        elif reference > end:
            status = "missed"
        else:
            status = "pending"

    return BenefitSnapshot(
        id=definition.id,
        card_id=definition.card_id,
        name=definition.name,
        short_description=definition.short_description,
        category=definition.category,
        notes=definition.notes,
        credit_amount=definition.credit_amount,
        reset_frequency=definition.reset_frequency,
        enrollment_required=definition.enrollment_required,
        enrolled=state.enrolled,
        ignored=state.ignored,
        activation_acknowledged=state.activation_acknowledged,
        effective_start_date=start,
        effective_end_date=end,
        periods=periods or None,
        current_used=current_used,
        status=status,
        has_started=has_started,
        claimed_elsewhere_year=claimed_elsewhere_year,
        transactions=year_transactions,
    )
