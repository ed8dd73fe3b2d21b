"""Issuer-specific statement adapters.

Each issuer export has its own column layout, date format and sign
convention. An adapter maps rows onto ``NormalizedTransaction`` and decides
which of them are statement credits that may represent benefit usage.
"""
import csv
from dataclasses import dataclass
import html
import logging

from app.schemas.transaction import NormalizedTransaction
from app.services.csv_parser import key_rows, parse_amount, parse_csv_rows, parse_date

logger = logging.getLogger(__name__)


class StatementImportError(Exception):
    """Base class for errors surfaced to the import entry point."""


class MalformedStatementError(StatementImportError):
    """The file is not a recognized tabular export or lacks required columns."""


class UnsupportedIssuerError(StatementImportError):
    """No adapter or matching rules exist for the card's issuer."""


@dataclass(frozen=True)
class StatementAdapterConfig:
    """Column mapping and credit classification rules for one issuer."""

    issuer: str
    date_column: str
    description_column: str
    amount_column: str
    credit_sign: int  # -1: credits are negative, +1: credits are positive
    extended_details_column: str | None = None
    type_column: str | None = None
    category_column: str | None = None
    reference_column: str | None = None
    date_format: str = "%m/%d/%Y"
    delimiter: str = ","
    decode_html_entities: bool = False
    excluded_keywords: tuple[str, ...] = ("payment", "autopay")
    excluded_types: tuple[str, ...] = ()
    allow_list: tuple[str, ...] = ()
    accepted_types: tuple[str, ...] = ()
    inclusion_keywords: tuple[str, ...] = ("credit",)

    @property
    def required_columns(self) -> tuple[str, ...]:
        return (self.date_column, self.description_column, self.amount_column)


# Amex: Date, Description, Amount, Extended Details, ..., Reference, Category
AMEX_CONFIG = StatementAdapterConfig(
    issuer="amex",
    date_column="Date",
    description_column="Description",
    amount_column="Amount",
    credit_sign=-1,
    extended_details_column="Extended Details",
    category_column="Category",
    reference_column="Reference",
    allow_list=("airline fee reimbursement",),
)

# Chase: Transaction Date, Post Date, Description, Category, Type, Amount, Memo
CHASE_CONFIG = StatementAdapterConfig(
    issuer="chase",
    date_column="Transaction Date",
    description_column="Description",
    amount_column="Amount",
    credit_sign=1,
    type_column="Type",
    category_column="Category",
    decode_html_entities=True,
    excluded_types=("payment", "return"),
    accepted_types=("adjustment",),
)

ADAPTERS: dict[str, StatementAdapterConfig] = {
    AMEX_CONFIG.issuer: AMEX_CONFIG,
    CHASE_CONFIG.issuer: CHASE_CONFIG,
}


def get_adapter(issuer: str) -> StatementAdapterConfig:
    """Look up the adapter for an issuer or raise ``UnsupportedIssuerError``."""
    config = ADAPTERS.get(issuer.lower())
    if config is None:
        raise UnsupportedIssuerError(f"Statement import is not yet supported for {issuer}")
    return config


def _column(row: dict[str, str], column: str | None) -> str | None:
    if not column:
        return None
    value = row.get(column, "").strip()
    return value or None


def parse_statement(raw_text: str, config: StatementAdapterConfig) -> list[NormalizedTransaction]:
    """Parse an issuer export into normalized transactions.

    Rows whose date does not parse are skipped, not fatal. A header with no
    rows yields an empty list.
    """
    try:
        raw_rows = parse_csv_rows(raw_text, config.delimiter)
    except csv.Error as e:
        raise MalformedStatementError(f"Could not read CSV: {e}") from e

    if not raw_rows:
        raise MalformedStatementError("The file does not contain a header row.")

    headers = raw_rows[0]
    missing = [column for column in config.required_columns if column not in headers]
    if missing:
        raise MalformedStatementError(
            f"Missing required column(s) for {config.issuer} export: {', '.join(missing)}"
        )

    rows = key_rows(headers, raw_rows[1:])

    transactions = []
    skipped = 0
    for row_num, row in enumerate(rows, start=2):  # Start at 2 (header is row 1)
        txn_date = parse_date(row[config.date_column], config.date_format)
        if txn_date is None:
            skipped += 1
            logger.debug(f"Row {row_num}: unparseable date {row[config.date_column]!r}, skipping")
            continue

        description = row[config.description_column]
        if config.decode_html_entities:
            description = html.unescape(description)

        reference = _column(row, config.reference_column)
        transactions.append(NormalizedTransaction(
            date=txn_date,
            description=description,
            amount=parse_amount(row[config.amount_column]),
            extended_details=_column(row, config.extended_details_column),
            type=_column(row, config.type_column),
            category=_column(row, config.category_column),
            reference=reference.replace("'", "") if reference else None,
        ))

    if skipped:
        logger.info(f"Skipped {skipped} {config.issuer} row(s) with unparseable dates")
    return transactions


def is_credit(transaction: NormalizedTransaction, config: StatementAdapterConfig) -> bool:
    """Classify a normalized transaction as a benefit-relevant credit.

    Order: sign convention, excluded type tags, textual exclusions,
    allow-list phrases, accepted type tags, inclusion keywords.
    """
    if transaction.amount * config.credit_sign <= 0:
        return False

    type_tag = (transaction.type or "").strip().lower()
    if type_tag and type_tag in config.excluded_types:
        return False

    text = transaction.combined_text
    if any(keyword in text for keyword in config.excluded_keywords):
        return False

    if any(phrase in text for phrase in config.allow_list):
        return True

    if type_tag and type_tag in config.accepted_types:
        return True

    return any(keyword in text for keyword in config.inclusion_keywords)


def extract_credits(
    transactions: list[NormalizedTransaction],
    config: StatementAdapterConfig,
) -> list[NormalizedTransaction]:
    """Extract only credit transactions from a statement."""
    return [t for t in transactions if is_credit(t, config)]


def is_benefit_credit(
    amount: float,
    description: str,
    issuer: str,
    type_tag: str | None = None,
    extended_details: str | None = None,
) -> bool:
    """Classify a stored transaction using its issuer's rules."""
    config = ADAPTERS.get(issuer.lower())
    if config is None:
        return False
    return is_credit(
        NormalizedTransaction.model_construct(
            description=description,
            amount=amount,
            extended_details=extended_details,
            type=type_tag,
        ),
        config,
    )
