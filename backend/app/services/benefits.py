"""Benefit service: snapshots, stats and toggles over the catalog and store."""
from datetime import datetime
import logging

from app.schemas.benefit import (
    BenefitDefinition,
    BenefitSnapshot,
    BenefitUserState,
    CardStats,
    CardStatsResponse,
    PeriodUserState,
    Stats,
    UserBenefitsDocument,
)
from app.schemas.card import CardDefinition
from app.services import user_store
from app.services.benefit_matcher import (
    AggregatedCredits,
    MatchCache,
    aggregate_credits,
    get_matched_credits,
)
from app.services.benefit_stats import calculate_stats
from app.services.benefit_usage import build_benefit_usage_snapshot, get_default_user_state
from app.services.card_config_loader import BenefitCatalog

logger = logging.getLogger(__name__)


def get_card_matches(
    catalog: BenefitCatalog,
    document: UserBenefitsDocument,
    card_id: str,
    match_cache: MatchCache | None = None,
) -> dict[str, AggregatedCredits]:
    """Benefit credits derived from a card's imported statement rows.

    The matcher runs once per import; results are reused from ``match_cache``
    while the card's ``imported_at`` is unchanged.
    """
    card_store = document.card_transactions.get(card_id)
    if card_store is None or not card_store.transactions:
        return {}

    if match_cache is not None:
        cached = match_cache.get(card_id, card_store.imported_at)
        if cached is not None:
            return cached

    card = catalog.get_card(card_id)
    definitions = catalog.definitions_for_card(card_id)
    matched = get_matched_credits(card_store.transactions, card_id, card.issuer, definitions) if card else []
    aggregated = aggregate_credits(matched, definitions)
    logger.debug(f"Matched {len(matched)} stored credit(s) for {card_id}")

    if match_cache is not None:
        match_cache.put(card_id, card_store.imported_at, aggregated)
    return aggregated


def _merge_derived(state: BenefitUserState, derived: AggregatedCredits) -> BenefitUserState:
    periods = dict(state.periods) if state.periods is not None else None
    for period_id, txs in (derived.period_transactions or {}).items():
        if periods is None:
            periods = {}
        existing = periods.get(period_id) or PeriodUserState()
        periods[period_id] = existing.model_copy(update={"transactions": [*existing.transactions, *txs]})

    return state.model_copy(update={
        "transactions": [*state.transactions, *derived.transactions],
        "periods": periods,
    })


def build_benefit(
    definition: BenefitDefinition,
    state: BenefitUserState | None,
    derived: AggregatedCredits | None,
    year: int | None = None,
    *,
    now: datetime,
) -> BenefitSnapshot:
    """Snapshot of one benefit with card-level credits folded into its state.

    A benefit that requires enrollment is treated as enrolled once a credit
    for it shows up, as of the earliest such credit.
    """
    resolved = state if state is not None else get_default_user_state(definition)
    auto_enrolled_at = None

    if derived is not None:
        derived_txs = [*derived.transactions, *(
            tx for txs in (derived.period_transactions or {}).values() for tx in txs
        )]
        if definition.enrollment_required and derived_txs:
            auto_enrolled_at = min(tx.date for tx in derived_txs)
        resolved = _merge_derived(resolved, derived)
        if auto_enrolled_at is not None:
            resolved = resolved.model_copy(update={"enrolled": True})

    snapshot = build_benefit_usage_snapshot(definition, resolved, year, now=now)
    if auto_enrolled_at is not None:
        snapshot = snapshot.model_copy(update={"auto_enrolled_at": auto_enrolled_at})
    return snapshot


def _snapshots(
    catalog: BenefitCatalog,
    document: UserBenefitsDocument,
    definitions: list[BenefitDefinition],
    year: int | None,
    now: datetime,
    match_cache: MatchCache | None,
) -> list[BenefitSnapshot]:
    matches_by_card: dict[str, dict[str, AggregatedCredits]] = {}
    snapshots = []
    for definition in definitions:
        if definition.card_id not in matches_by_card:
            matches_by_card[definition.card_id] = get_card_matches(
                catalog, document, definition.card_id, match_cache
            )
        snapshots.append(build_benefit(
            definition,
            document.benefits.get(definition.id),
            matches_by_card[definition.card_id].get(definition.id),
            year,
            now=now,
        ))
    return snapshots


def get_benefits(
    catalog: BenefitCatalog,
    store: user_store.UserStateStore,
    card_id: str | None = None,
    include_ignored: bool = False,
    year: int | None = None,
    *,
    now: datetime,
    match_cache: MatchCache | None = None,
) -> list[BenefitSnapshot]:
    """Snapshots for every benefit (or one card's), hiding ignored ones by default."""
    definitions = catalog.definitions_for_card(card_id) if card_id else list(catalog.definitions)
    snapshots = _snapshots(catalog, store.read(), definitions, year, now, match_cache)
    if include_ignored:
        return snapshots
    return [snapshot for snapshot in snapshots if not snapshot.ignored]


def get_benefit(
    catalog: BenefitCatalog,
    store: user_store.UserStateStore,
    benefit_id: str,
    year: int | None = None,
    *,
    now: datetime,
    match_cache: MatchCache | None = None,
) -> BenefitSnapshot | None:
    definition = catalog.get_definition(benefit_id)
    if definition is None:
        return None
    return _snapshots(catalog, store.read(), [definition], year, now, match_cache)[0]


def get_stats(
    catalog: BenefitCatalog,
    store: user_store.UserStateStore,
    year: int | None = None,
    *,
    now: datetime,
    match_cache: MatchCache | None = None,
) -> Stats:
    snapshots = get_benefits(catalog, store, year=year, now=now, match_cache=match_cache)
    return calculate_stats(snapshots, year, now=now)


def get_total_annual_fee(cards: list[CardDefinition]) -> int:
    return sum(card.annual_fee for card in cards)


def get_card_stats(
    catalog: BenefitCatalog,
    store: user_store.UserStateStore,
    year: int | None = None,
    *,
    now: datetime,
    match_cache: MatchCache | None = None,
) -> CardStatsResponse:
    """Per-card stats computed from a single read of the store."""
    snapshots = get_benefits(catalog, store, year=year, now=now, match_cache=match_cache)

    card_stats = []
    for card in catalog.cards:
        stats = calculate_stats([s for s in snapshots if s.card_id == card.id], year, now=now)
        card_stats.append(CardStats(
            **stats.model_dump(),
            card_id=card.id,
            card_name=card.name,
            annual_fee=card.annual_fee,
        ))

    return CardStatsResponse(cards=card_stats, total_annual_fee=get_total_annual_fee(list(catalog.cards)))


def update_benefit(
    catalog: BenefitCatalog,
    store: user_store.UserStateStore,
    benefit_id: str,
    ignored: bool,
    year: int | None = None,
    *,
    now: datetime,
    match_cache: MatchCache | None = None,
) -> BenefitSnapshot | None:
    definition = catalog.get_definition(benefit_id)
    if definition is None:
        return None
    user_store.set_ignored(store, definition, ignored)
    return get_benefit(catalog, store, benefit_id, year, now=now, match_cache=match_cache)


def toggle_enrollment(
    catalog: BenefitCatalog,
    store: user_store.UserStateStore,
    benefit_id: str,
    year: int | None = None,
    *,
    now: datetime,
    match_cache: MatchCache | None = None,
) -> BenefitSnapshot | None:
    definition = catalog.get_definition(benefit_id)
    if definition is None:
        return None
    user_store.toggle_enrollment(store, definition)
    return get_benefit(catalog, store, benefit_id, year, now=now, match_cache=match_cache)


def toggle_activation(
    catalog: BenefitCatalog,
    store: user_store.UserStateStore,
    benefit_id: str,
    year: int | None = None,
    *,
    now: datetime,
    match_cache: MatchCache | None = None,
) -> BenefitSnapshot | None:
    definition = catalog.get_definition(benefit_id)
    if definition is None:
        return None
    user_store.toggle_activation(store, definition, now=now)
    return get_benefit(catalog, store, benefit_id, year, now=now, match_cache=match_cache)
