import pytest
from conftest import FIXED_NOW
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import benefits, cards, deps, imports, transactions

AMEX_CSV = (
    "Date,Description,Amount,Extended Details\n"
    "01/03/2025,AMEX UBER CASH CREDIT,-15.00,Uber Cash\n"
    "01/04/2025,UBER EATS,32.18,\n"
)


@pytest.fixture
def client(session_factory, catalog):
    app = FastAPI()
    for module in (cards, transactions, benefits, imports):
        app.include_router(module.router, prefix="/api")

    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    app.dependency_overrides[deps.get_catalog] = lambda: catalog
    app.dependency_overrides[deps.get_now] = lambda: FIXED_NOW
    return TestClient(app)


def _upload(client, path, card_id, content):
    return client.post(
        path,
        data={"card_id": card_id},
        files={"file": ("statement.csv", content, "text/csv")},
    )


def test_list_cards(client):
    response = client.get("/api/cards")

    assert response.status_code == 200
    data = response.json()
    assert [card["id"] for card in data] == ["amex-platinum", "chase-sapphire-reserve", "capital-one-venture-x"]
    assert len(data[0]["benefits"]) == 3


def test_list_benefits_and_unknown_card(client):
    response = client.get("/api/benefits", params={"card_id": "amex-platinum", "year": 2025})
    assert response.status_code == 200
    assert {b["id"] for b in response.json()} == {"amex-uber-cash", "amex-saks", "amex-clear-plus"}

    assert client.get("/api/benefits", params={"card_id": "nope"}).status_code == 404


def test_get_benefit_and_404(client):
    response = client.get("/api/benefits/amex-saks")
    assert response.status_code == 200
    assert response.json()["status"] == "pending"

    assert client.get("/api/benefits/unknown").status_code == 404
    assert client.post("/api/benefits/unknown/enrollment").status_code == 404


def test_toggle_enrollment_activation_and_ignore(client):
    assert client.post("/api/benefits/amex-saks/enrollment").json()["enrolled"] is True
    assert client.post("/api/benefits/amex-saks/activation").json()["activation_acknowledged"] is True

    response = client.patch("/api/benefits/amex-saks", json={"ignored": True})
    assert response.json()["ignored"] is True

    listed = client.get("/api/benefits", params={"card_id": "amex-platinum"}).json()
    assert "amex-saks" not in {b["id"] for b in listed}
    listed = client.get("/api/benefits", params={"card_id": "amex-platinum", "include_ignored": True}).json()
    assert "amex-saks" in {b["id"] for b in listed}


def test_card_transactions_round_trip(client):
    payload = {"transactions": [
        {"date": "2025-01-03", "description": "AMEX UBER CASH CREDIT", "amount": -15.0},
        {"date": "2025-01-04", "description": "UBER EATS", "amount": 32.18},
    ]}

    response = client.post("/api/cards/amex-platinum/transactions", json=payload)
    assert response.status_code == 200
    assert response.json()["total"] == 2

    credits = client.get("/api/cards/amex-platinum/transactions", params={"credits_only": True}).json()
    assert [tx["description"] for tx in credits["transactions"]] == ["AMEX UBER CASH CREDIT"]

    uber = client.get("/api/benefits/amex-uber-cash", params={"year": 2025}).json()
    assert uber["periods"][0]["used_amount"] == 15

    assert client.get("/api/cards/nope/transactions").status_code == 404


def test_empty_card_transactions(client):
    response = client.get("/api/cards/chase-sapphire-reserve/transactions")

    assert response.status_code == 200
    assert response.json() == {
        "card_id": "chase-sapphire-reserve",
        "imported_at": None,
        "transactions": [],
        "total": 0,
    }


def test_import_note(client):
    assert client.get("/api/cards/amex-platinum/import-note").json()["note"] == ""

    response = client.put("/api/cards/amex-platinum/import-note", json={"note": "Through March"})
    assert response.json() == {"card_id": "amex-platinum", "note": "Through March"}
    assert client.get("/api/cards/amex-platinum/import-note").json()["note"] == "Through March"

    assert client.put("/api/cards/amex-platinum/import-note", json={"note": "x" * 2001}).status_code == 422


def test_stats_endpoints(client):
    stats = client.get("/api/benefits/stats", params={"year": 2025})
    assert stats.status_code == 200
    assert stats.json()["total_benefits"] == 6

    card_stats = client.get("/api/cards/stats", params={"year": 2025}).json()
    assert card_stats["total_annual_fee"] == 2085
    assert len(card_stats["cards"]) == 3


def test_reminders(client):
    response = client.get("/api/benefits/reminders", params={"days": 30})

    assert response.status_code == 200
    assert {r["benefit_id"] for r in response.json()} == {"amex-uber-cash", "csr-lyft"}


def test_import_preview_and_confirm(client):
    preview = _upload(client, "/api/imports/preview", "amex-platinum", AMEX_CSV)
    assert preview.status_code == 200
    assert preview.json()["status"] == "ok"
    assert preview.json()["result"]["matched_credits"][0]["benefit_id"] == "amex-uber-cash"

    confirm = _upload(client, "/api/imports/confirm", "amex-platinum", AMEX_CSV)
    assert confirm.status_code == 200
    assert confirm.json()["transactions_recorded"] == 1

    uber = client.get("/api/benefits/amex-uber-cash", params={"year": 2025}).json()
    assert uber["periods"][0]["status"] == "completed"


def test_import_error_statuses(client):
    malformed = _upload(client, "/api/imports/preview", "amex-platinum", "just some text\n")
    assert malformed.status_code == 400
    assert malformed.json()["status"] == "malformed_file"

    unsupported = _upload(client, "/api/imports/confirm", "capital-one-venture-x", AMEX_CSV)
    assert unsupported.status_code == 501
    assert unsupported.json()["status"] == "unsupported_issuer"

    no_credits = _upload(client, "/api/imports/preview", "amex-platinum", "Date,Description,Amount\n01/04/2025,UBER EATS,32.18\n")
    assert no_credits.status_code == 200
    assert no_credits.json()["status"] == "no_credits"

    assert _upload(client, "/api/imports/preview", "nope", AMEX_CSV).status_code == 404


def test_reset_user_data(client):
    client.put("/api/cards/amex-platinum/import-note", json={"note": "keep?"})

    response = client.delete("/api/benefits/user-data")

    assert response.status_code == 200
    assert client.get("/api/cards/amex-platinum/import-note").json()["note"] == ""
