from conftest import FIXED_NOW

from app.services import benefits as benefit_service
from app.services.statement_import import confirm_statement_import, preview_statement_import

AMEX_CSV = """Date,Description,Amount,Extended Details,Reference,Category
01/03/2025,AMEX UBER CASH CREDIT,-15.00,Uber Cash,'320250030123',Fees & Adjustments
02/03/2025,AMEX UBER CASH CREDIT,-15.00,Uber Cash,'320250340123',Fees & Adjustments
02/10/2025,PLATINUM MYSTERY CREDIT,-20.00,,'320250410123',Fees & Adjustments
01/04/2025,UBER EATS,32.18,,'320250040456',Restaurant
"""

NO_CREDITS_CSV = """Date,Description,Amount
01/04/2025,UBER EATS,32.18
01/09/2025,AUTOPAY PAYMENT - THANK YOU,-1500.00
"""


def _card(catalog, card_id):
    return catalog.get_card(card_id), catalog.definitions_for_card(card_id)


def test_preview_matches_credits_without_writing(catalog, store):
    card, definitions = _card(catalog, "amex-platinum")

    response = preview_statement_import(AMEX_CSV, card, definitions)

    assert response.status == "ok"
    assert len(response.transactions) == 4
    assert response.result.total_matched == 2
    assert response.result.total_unmatched == 1
    assert response.result.unmatched_credits[0].description == "PLATINUM MYSTERY CREDIT"
    assert store.read().benefits == {}


def test_malformed_file(catalog):
    card, definitions = _card(catalog, "chase-sapphire-reserve")

    response = preview_statement_import(AMEX_CSV, card, definitions)

    assert response.status == "malformed_file"
    assert "Transaction Date" in response.message
    assert response.result is None


def test_unsupported_issuer(catalog):
    card, definitions = _card(catalog, "capital-one-venture-x")

    response = preview_statement_import(AMEX_CSV, card, definitions)

    assert response.status == "unsupported_issuer"


def test_no_credits(catalog):
    card, definitions = _card(catalog, "amex-platinum")

    response = preview_statement_import(NO_CREDITS_CSV, card, definitions)

    assert response.status == "no_credits"
    assert len(response.transactions) == 2


def test_header_only_export_has_no_credits(catalog):
    card, definitions = _card(catalog, "amex-platinum")

    response = preview_statement_import(
        "Date,Description,Amount,Extended Details,Reference,Category\n", card, definitions
    )

    assert response.status == "no_credits"
    assert response.transactions == []


def test_confirm_records_credits_once(catalog, store):
    card, definitions = _card(catalog, "amex-platinum")

    first = confirm_statement_import(AMEX_CSV, card, definitions, store)
    second = confirm_statement_import(AMEX_CSV, card, definitions, store)

    assert first.status == "ok"
    assert first.benefits_updated == ["amex-uber-cash"]
    assert first.transactions_recorded == 2
    assert second.transactions_recorded == 0

    periods = store.read().benefits["amex-uber-cash"].periods
    assert len(periods["m01"].transactions) == 1
    assert len(periods["m02"].transactions) == 1

    snapshot = benefit_service.get_benefit(catalog, store, "amex-uber-cash", 2025, now=FIXED_NOW)
    assert snapshot.current_used == 30


def test_confirm_errors_leave_store_untouched(catalog, store):
    card, definitions = _card(catalog, "amex-platinum")

    response = confirm_statement_import(NO_CREDITS_CSV, card, definitions, store)

    assert response.status == "no_credits"
    assert response.transactions_recorded == 0
    assert store.read().benefits == {}
