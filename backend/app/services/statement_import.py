"""Statement import entry point.

Runs lexer, adapter and matcher for one card and turns their failures into
an ``ImportResponse`` status instead of letting them escape.
"""
import logging

from app.schemas.benefit import BenefitDefinition
from app.schemas.card import CardDefinition
from app.schemas.transaction import ImportConfirmResponse, ImportResponse
from app.services import user_store
from app.services.benefit_matcher import aggregate_credits, get_rule_set, match_credits
from app.services.statement_adapter import (
    MalformedStatementError,
    UnsupportedIssuerError,
    extract_credits,
    get_adapter,
    parse_statement,
)

logger = logging.getLogger(__name__)


def preview_statement_import(
    raw_text: str,
    card: CardDefinition,
    definitions: list[BenefitDefinition],
) -> ImportResponse:
    """Parse a statement and match its credits without writing anything."""
    try:
        config = get_adapter(card.issuer)
        if get_rule_set(card.id) is None:
            raise UnsupportedIssuerError(f"No benefit matching rules for {card.name}")
        transactions = parse_statement(raw_text, config)
    except UnsupportedIssuerError as e:
        logger.info(f"Import rejected for {card.id}: {e}")
        return ImportResponse(status="unsupported_issuer", card_id=card.id, message=str(e))
    except MalformedStatementError as e:
        logger.info(f"Import rejected for {card.id}: {e}")
        return ImportResponse(status="malformed_file", card_id=card.id, message=str(e))

    credits = extract_credits(transactions, config)
    if not credits:
        return ImportResponse(
            status="no_credits",
            card_id=card.id,
            message="No statement credits were found in this file.",
            transactions=transactions,
        )

    result = match_credits(credits, card.id, definitions)
    logger.info(
        f"Import preview for {card.id}: {len(transactions)} rows, "
        f"{result.total_matched} matched, {result.total_unmatched} unmatched"
    )
    return ImportResponse(status="ok", card_id=card.id, result=result, transactions=transactions)


def confirm_statement_import(
    raw_text: str,
    card: CardDefinition,
    definitions: list[BenefitDefinition],
    store: user_store.UserStateStore,
) -> ImportConfirmResponse:
    """Match a statement and record its credits; errors leave the store untouched."""
    preview = preview_statement_import(raw_text, card, definitions)
    if preview.status != "ok" or preview.result is None:
        return ImportConfirmResponse(status=preview.status, card_id=card.id, message=preview.message)

    aggregated = aggregate_credits(preview.result.matched_credits, definitions)
    updated, recorded = user_store.record_matched_credits(store, aggregated, definitions)
    return ImportConfirmResponse(
        status="ok",
        card_id=card.id,
        message=f"Recorded {recorded} credit(s)",
        benefits_updated=updated,
        transactions_recorded=recorded,
    )
