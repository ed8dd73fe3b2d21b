"""Benefit matching: map statement credits onto benefit definitions.

Each card has an explicit, ordered rule list and the first rule whose
pattern matches wins, so more specific patterns must precede generic ones
(``uber.*one`` before ``uber``).
"""
from dataclasses import dataclass, field
from datetime import datetime
import logging
import re

from app.schemas.benefit import BenefitDefinition
from app.schemas.transaction import (
    ImportResult,
    MatchedCredit,
    NormalizedTransaction,
    StoredTransaction,
    TransactionKey,
)
from app.schemas.types import MatchConfidence
from app.services.benefit_periods import align_to_year
from app.services.statement_adapter import is_benefit_credit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchRule:
    """One (pattern, benefit id) rule."""

    pattern: re.Pattern
    benefit_id: str

    @classmethod
    def compile(cls, pattern: str, benefit_id: str) -> "MatchRule":
        return cls(re.compile(pattern, re.IGNORECASE), benefit_id)


@dataclass(frozen=True)
class IssuerRuleSet:
    """Ordered rules for a card, optionally gated by a brand identifier.

    When ``brand_pattern`` is set a description must contain one of the
    issuer's name tokens before any rule is tried; otherwise the credit is
    indistinguishable from an ordinary merchant refund.
    """

    card_id: str
    rules: tuple[MatchRule, ...]
    brand_pattern: re.Pattern | None = None

    def match(self, text: str) -> MatchRule | None:
        if self.brand_pattern is not None and not self.brand_pattern.search(text):
            return None
        for rule in self.rules:
            if rule.pattern.search(text):
                return rule
        return None


AMEX_PLATINUM_RULES = IssuerRuleSet(
    card_id="amex-platinum",
    brand_pattern=re.compile(r"platinum|plat\b|amex", re.IGNORECASE),
    rules=(
        MatchRule.compile(r"uber.*one", "amex-uber-one"),
        MatchRule.compile(r"uber", "amex-uber-cash"),
        MatchRule.compile(r"lululemon", "amex-lululemon"),
        MatchRule.compile(r"saks", "amex-saks"),
        MatchRule.compile(r"clear", "amex-clear-plus"),
        MatchRule.compile(r"airline", "amex-airline-fee"),
        MatchRule.compile(r"resy", "amex-resy-credit"),
        MatchRule.compile(r"digital.*ent|entertainment", "amex-digital-entertainment"),
        MatchRule.compile(r"walmart", "amex-walmart-plus"),
        MatchRule.compile(r"hotel", "amex-hotel-credit"),
        MatchRule.compile(r"oura", "amex-oura"),
        MatchRule.compile(r"equinox", "amex-equinox"),
        MatchRule.compile(r"global.*entry|tsa.*precheck|nexus", "amex-global-entry"),
    ),
)

# Based on Chase credit descriptions (e.g. "TRAVEL CREDIT $300/YEAR")
CHASE_SAPPHIRE_RESERVE_RULES = IssuerRuleSet(
    card_id="chase-sapphire-reserve",
    rules=(
        MatchRule.compile(r"travel\s*credit", "csr-travel-credit"),
        MatchRule.compile(r"the\s*edit", "csr-edit-hotel"),
        MatchRule.compile(r"exclusive\s*tables", "csr-dining-exclusive-tables"),
        MatchRule.compile(r"doordash", "csr-doordash"),
        MatchRule.compile(r"lyft", "csr-lyft"),
        MatchRule.compile(r"peloton", "csr-peloton"),
        MatchRule.compile(r"stubhub|viagogo", "csr-stubhub"),
        MatchRule.compile(r"global\s*entry|tsa\s*precheck|nexus", "csr-global-entry"),
    ),
)

CARD_RULES: dict[str, IssuerRuleSet] = {
    AMEX_PLATINUM_RULES.card_id: AMEX_PLATINUM_RULES,
    CHASE_SAPPHIRE_RESERVE_RULES.card_id: CHASE_SAPPHIRE_RESERVE_RULES,
}


def get_rule_set(card_id: str) -> IssuerRuleSet | None:
    return CARD_RULES.get(card_id)


def match_benefit_id(
    description: str,
    card_id: str,
) -> tuple[str, MatchConfidence] | None:
    """Find which benefit a credit description matches, if any."""
    rule_set = get_rule_set(card_id)
    if rule_set is None:
        return None

    rule = rule_set.match(description)
    if rule is None:
        return None
    # Every current rule is an explicit pattern; "low" is reserved for fuzzy matching
    return rule.benefit_id, "high"


def match_credits(
    credits: list[NormalizedTransaction],
    card_id: str,
    benefits: list[BenefitDefinition],
) -> ImportResult:
    """Match credits to benefits and collect the unmatched remainder."""
    benefit_map = {benefit.id: benefit for benefit in benefits}
    matched_credits: list[MatchedCredit] = []
    unmatched_credits: list[NormalizedTransaction] = []

    for credit in credits:
        text = f"{credit.description} {credit.extended_details or ''}".strip()
        match = match_benefit_id(text, card_id)
        if match is None:
            unmatched_credits.append(credit)
            continue

        benefit_id, confidence = match
        benefit = benefit_map.get(benefit_id)
        if benefit is None:
            logger.warning(f"Credit matched unknown benefit {benefit_id} on {card_id}")

        matched_credits.append(MatchedCredit(
            transaction=credit,
            benefit_id=benefit_id,
            benefit_name=benefit.name if benefit else None,
            credit_amount=abs(credit.amount),
            confidence=confidence,
        ))

    return ImportResult(
        matched_credits=matched_credits,
        unmatched_credits=unmatched_credits,
        total_matched=len(matched_credits),
        total_unmatched=len(unmatched_credits),
        total_transactions=len(credits),
    )


@dataclass
class AggregatedCredits:
    """Matched credits for one benefit, split by period where applicable."""

    transactions: list[StoredTransaction] = field(default_factory=list)
    period_transactions: dict[str, list[StoredTransaction]] | None = None

    @property
    def total(self) -> float:
        period_total = sum(
            tx.amount for txs in (self.period_transactions or {}).values() for tx in txs
        )
        return sum(tx.amount for tx in self.transactions) + period_total


def _find_period_id(definition: BenefitDefinition, when: datetime) -> str | None:
    """Id of the period containing ``when``, with periods aligned to its year."""
    anchor_year = definition.start_date.year
    for period in definition.periods or ():
        start = align_to_year(period.start_date, when.year, anchor_year)
        end = align_to_year(period.end_date, when.year, anchor_year)
        if start <= when <= end:
            return period.id
    return None


def aggregate_credits(
    matched_credits: list[MatchedCredit],
    definitions: list[BenefitDefinition],
) -> dict[str, AggregatedCredits]:
    """Group matched credits per benefit after deduplicating them.

    Credits for period-based benefits are attributed to the period containing
    their date; credits outside every period stay at benefit level.
    """
    definition_map = {definition.id: definition for definition in definitions}
    seen: set[TransactionKey] = set()
    aggregated: dict[str, AggregatedCredits] = {}

    for match in matched_credits:
        if not match.benefit_id:
            continue
        stored = match.to_stored()
        if stored.key in seen:
            continue
        seen.add(stored.key)

        group = aggregated.setdefault(match.benefit_id, AggregatedCredits())
        definition = definition_map.get(match.benefit_id)
        period_id = _find_period_id(definition, stored.date) if definition and definition.periods else None
        if period_id is None:
            group.transactions.append(stored)
            continue

        if group.period_transactions is None:
            group.period_transactions = {}
        group.period_transactions.setdefault(period_id, []).append(stored)

    return aggregated


def get_matched_credits(
    transactions: list[StoredTransaction],
    card_id: str,
    issuer: str,
    definitions: list[BenefitDefinition],
) -> list[MatchedCredit]:
    """Run stored card transactions back through credit classification and matching."""
    credits = [
        NormalizedTransaction(
            date=tx.date,
            description=tx.description,
            amount=tx.amount,
            type=tx.type,
        )
        for tx in transactions
        if is_benefit_credit(tx.amount, tx.description, issuer, tx.type)
    ]
    if not credits:
        return []

    card_definitions = [d for d in definitions if d.card_id == card_id]
    return match_credits(credits, card_id, card_definitions).matched_credits


@dataclass
class CachedMatches:
    imported_at: datetime
    matched_by_benefit: dict[str, AggregatedCredits]


@dataclass
class MatchCache:
    """Per-card matcher results keyed by the card import timestamp.

    Owned by the caller and passed explicitly, so independent contexts never
    share entries.
    """

    entries: dict[str, CachedMatches] = field(default_factory=dict)

    def get(self, card_id: str, imported_at: datetime) -> dict[str, AggregatedCredits] | None:
        cached = self.entries.get(card_id)
        if cached is None or cached.imported_at != imported_at:
            return None
        return cached.matched_by_benefit

    def put(self, card_id: str, imported_at: datetime, matched_by_benefit: dict[str, AggregatedCredits]) -> None:
        self.entries[card_id] = CachedMatches(imported_at, matched_by_benefit)

    def clear(self) -> None:
        self.entries.clear()

    def invalidate(self, card_id: str) -> None:
        self.entries.pop(card_id, None)
