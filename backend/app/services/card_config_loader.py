"""Service to load card and benefit definitions from YAML files."""
from dataclasses import dataclass, field
from datetime import date, datetime
import logging
from pathlib import Path

from pydantic import ValidationError
import yaml

from app.schemas.benefit import BenefitDefinition, PeriodDefinition
from app.schemas.card import CardDefinition
from app.schemas.types import coerce_utc
from app.services.benefit_periods import end_of_day, generate_periods, start_of_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BenefitCatalog:
    """Read-only collection of card and benefit definitions."""

    cards: tuple[CardDefinition, ...] = ()
    definitions: tuple[BenefitDefinition, ...] = ()
    _cards_by_id: dict[str, CardDefinition] = field(default_factory=dict, repr=False, compare=False)
    _definitions_by_id: dict[str, BenefitDefinition] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def build(cls, cards: list[CardDefinition], definitions: list[BenefitDefinition]) -> "BenefitCatalog":
        return cls(
            cards=tuple(cards),
            definitions=tuple(definitions),
            _cards_by_id={card.id: card for card in cards},
            _definitions_by_id={definition.id: definition for definition in definitions},
        )

    def get_card(self, card_id: str) -> CardDefinition | None:
        return self._cards_by_id.get(card_id)

    def get_definition(self, benefit_id: str) -> BenefitDefinition | None:
        return self._definitions_by_id.get(benefit_id)

    def definitions_for_card(self, card_id: str) -> list[BenefitDefinition]:
        return [d for d in self.definitions if d.card_id == card_id]


def load_catalog(configs_dir: Path) -> BenefitCatalog:
    """Load all card configs from YAML files.

    Files that fail to parse or validate are logged and skipped.
    """
    if not configs_dir.exists():
        logger.warning(f"Card configs directory not found: {configs_dir}")
        return BenefitCatalog.build([], [])

    cards: list[CardDefinition] = []
    definitions: list[BenefitDefinition] = []
    seen_cards: set[str] = set()

    for yaml_file in sorted(configs_dir.glob("*.yaml")):
        try:
            card, card_definitions = _load_single_config(yaml_file)
        except (OSError, KeyError, yaml.YAMLError, ValidationError, ValueError) as e:
            logger.error(f"Failed to load card config from {yaml_file}: {e}")
            continue
        if card is None:
            continue
        if card.id in seen_cards:
            logger.warning(f"Duplicate card id {card.id} in {yaml_file}, skipping")
            continue

        seen_cards.add(card.id)
        cards.append(card)
        definitions.extend(card_definitions)

    logger.info(f"Loaded {len(cards)} card configs with {len(definitions)} benefits")
    return BenefitCatalog.build(cards, definitions)


def _as_date(value, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return coerce_utc(value).date()
    raise ValueError(f"{field_name} must be a date, got {value!r}")


def _build_periods(benefit: dict, cycle_start: date, cycle_end: date) -> list[PeriodDefinition] | None:
    """Explicit periods from YAML, or periods generated from the cadence."""
    if "periods" in benefit:
        return [
            PeriodDefinition(
                id=str(period["id"]),
                start_date=start_of_day(_as_date(period["start_date"], "start_date")),
                end_date=end_of_day(_as_date(period["end_date"], "end_date")),
            )
            for period in benefit["periods"] or []
        ] or None

    generated = generate_periods(benefit.get("reset_frequency", "annual"), cycle_start, cycle_end)
    if not generated:
        return None
    return [
        PeriodDefinition(id=period_id, start_date=start_of_day(start), end_date=end_of_day(end))
        for period_id, start, end in generated
    ]


def _load_single_config(yaml_path: Path) -> tuple[CardDefinition | None, list[BenefitDefinition]]:
    """Load a single card config from YAML file."""
    with open(yaml_path, "r") as f:
        data = yaml.safe_load(f) or {}

    card_id = data.get("id")
    if not card_id:
        logger.warning(f"Card config missing id: {yaml_path}")
        return None, []

    card = CardDefinition(
        id=card_id,
        name=data.get("name", card_id),
        issuer=data.get("issuer", "unknown"),
        annual_fee=data.get("annual_fee", 0),
        benefits_url=data.get("benefits_url"),
    )

    definitions = []
    for benefit in data.get("benefits", []):
        cycle_start = _as_date(benefit.get("start_date", data.get("start_date")), "start_date")
        cycle_end = _as_date(benefit.get("end_date", data.get("end_date")), "end_date")
        periods = _build_periods(benefit, cycle_start, cycle_end)
        definitions.append(BenefitDefinition(
            id=benefit["id"],
            card_id=card_id,
            name=benefit["name"],
            short_description=benefit.get("short_description", ""),
            credit_amount=benefit["credit_amount"],
            reset_frequency=benefit.get("reset_frequency", "annual"),
            start_date=start_of_day(cycle_start),
            end_date=end_of_day(cycle_end),
            periods=tuple(periods) if periods else None,
            enrollment_required=benefit.get("enrollment_required", False),
            category=benefit.get("category", "other"),
            notes=benefit.get("notes"),
        ))
        logger.debug(f"Loaded benefit {benefit['id']} for {card_id}")

    return card, definitions
