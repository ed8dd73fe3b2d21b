from datetime import datetime, timezone

import pytest

from app.schemas.transaction import NormalizedTransaction
from app.services.statement_adapter import (
    AMEX_CONFIG,
    CHASE_CONFIG,
    MalformedStatementError,
    UnsupportedIssuerError,
    extract_credits,
    get_adapter,
    is_benefit_credit,
    is_credit,
    parse_statement,
)

AMEX_CSV = """Date,Description,Amount,Extended Details,Appears On Your Statement As,Address,Reference,Category
01/03/2025,AMEX UBER CASH CREDIT,-15.00,Uber Cash,AMEX UBER CASH CREDIT,,'320250030123',Fees & Adjustments
01/04/2025,UBER EATS,32.18,,UBER EATS,,'320250040456',Restaurant
01/09/2025,AUTOPAY PAYMENT - THANK YOU,-1500.00,,AUTOPAY PAYMENT,,'320250090789',
01/12/2025,DELTA AIR LINES,-39.00,Airline Fee Reimbursement,DELTA,,'320250120111',Travel
not-a-date,BROKEN ROW,-5.00,,,,,
"""

CHASE_CSV = """Transaction Date,Post Date,Description,Category,Type,Amount,Memo
01/02/2025,01/03/2025,TRAVEL CREDIT $300/YEAR,Travel,Adjustment,45.00,
01/05/2025,01/05/2025,Payment Thank You-Mobile,,Payment,500.00,
01/06/2025,01/07/2025,AMAZON RETURN,Shopping,Return,20.00,
01/08/2025,01/08/2025,Barnes &amp; Noble,Shopping,Sale,-12.00,
01/10/2025,01/11/2025,LYFT RIDE CREDIT,Travel,Sale,10.00,
"""


def _transaction(amount, description, type_tag=None, extended_details=None):
    return NormalizedTransaction(
        date=datetime(2025, 1, 1, tzinfo=timezone.utc),
        description=description,
        amount=amount,
        type=type_tag,
        extended_details=extended_details,
    )


def test_parse_amex_statement_skips_bad_dates():
    transactions = parse_statement(AMEX_CSV, AMEX_CONFIG)

    assert len(transactions) == 4
    first = transactions[0]
    assert first.description == "AMEX UBER CASH CREDIT"
    assert first.amount == -15.0
    assert first.extended_details == "Uber Cash"
    assert first.reference == "320250030123"
    assert first.date == datetime(2025, 1, 3, tzinfo=timezone.utc)


def test_amex_credits_are_negative_and_payments_excluded():
    credits = extract_credits(parse_statement(AMEX_CSV, AMEX_CONFIG), AMEX_CONFIG)

    assert [c.description for c in credits] == ["AMEX UBER CASH CREDIT", "DELTA AIR LINES"]


def test_amex_allow_list_phrase_counts_without_credit_keyword():
    assert is_credit(_transaction(-39.0, "DELTA", extended_details="Airline Fee Reimbursement"), AMEX_CONFIG)
    assert not is_credit(_transaction(-39.0, "DELTA REFUND"), AMEX_CONFIG)


def test_parse_chase_statement_decodes_html_entities():
    transactions = parse_statement(CHASE_CSV, CHASE_CONFIG)

    assert transactions[3].description == "Barnes & Noble"
    assert transactions[0].type == "Adjustment"


def test_chase_credits_are_positive_with_type_rules():
    credits = extract_credits(parse_statement(CHASE_CSV, CHASE_CONFIG), CHASE_CONFIG)

    assert [c.description for c in credits] == ["TRAVEL CREDIT $300/YEAR", "LYFT RIDE CREDIT"]


def test_chase_positive_payment_type_is_excluded():
    assert not is_credit(_transaction(300.0, "STATEMENT CREDIT", type_tag="Payment"), CHASE_CONFIG)


def test_chase_adjustment_type_accepted_without_credit_keyword():
    assert is_credit(_transaction(5.0, "DOORDASH DASHPASS", type_tag="Adjustment"), CHASE_CONFIG)


def test_missing_required_columns_is_malformed():
    with pytest.raises(MalformedStatementError, match="Amount"):
        parse_statement("Date,Description\n01/01/2025,Coffee\n", AMEX_CONFIG)


def test_header_only_yields_no_transactions():
    assert parse_statement("Date,Description,Amount\n", AMEX_CONFIG) == []


def test_header_only_with_wrong_columns_reports_missing_columns():
    with pytest.raises(MalformedStatementError, match="Transaction Date"):
        parse_statement("Date,Description,Amount\n", CHASE_CONFIG)


def test_empty_file_is_malformed():
    with pytest.raises(MalformedStatementError, match="header"):
        parse_statement("\n\n", AMEX_CONFIG)


def test_unknown_issuer_is_unsupported():
    with pytest.raises(UnsupportedIssuerError):
        get_adapter("capital-one")
    assert get_adapter("AMEX") is AMEX_CONFIG


def test_is_benefit_credit_for_stored_rows():
    assert is_benefit_credit(-15.0, "AMEX UBER CASH CREDIT", "amex")
    assert not is_benefit_credit(15.0, "AMEX UBER CASH CREDIT", "amex")
    assert is_benefit_credit(45.0, "TRAVEL CREDIT", "chase", "Adjustment")
    assert not is_benefit_credit(-15.0, "SOME CREDIT", "capital-one")
