"""Card-level transaction store endpoints."""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_catalog, get_match_cache, get_now, get_user_store
from app.schemas.card import CardDefinition
from app.schemas.transaction import CardTransactionsResponse, CardTransactionsUpload
from app.services import user_store
from app.services.benefit_matcher import MatchCache
from app.services.card_config_loader import BenefitCatalog
from app.services.statement_adapter import is_benefit_credit

router = APIRouter(prefix="/cards", tags=["transactions"])


def _get_card_or_404(catalog: BenefitCatalog, card_id: str) -> CardDefinition:
    card = catalog.get_card(card_id)
    if card is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Card not found: {card_id}",
        )
    return card


@router.get("/{card_id}/transactions", response_model=CardTransactionsResponse)
def list_card_transactions(
    card_id: str,
    year: int | None = Query(None, ge=1900, le=9999, description="Only rows dated in this year"),
    credits_only: bool = Query(False, description="Only rows classified as benefit credits"),
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
):
    """List a card's imported statement rows."""
    card = _get_card_or_404(catalog, card_id)
    card_store = user_store.get_card_transactions(store, card_id)
    if card_store is None:
        return CardTransactionsResponse(card_id=card_id, transactions=[], total=0)

    transactions = card_store.transactions
    if year is not None:
        transactions = [tx for tx in transactions if tx.date.year == year]
    if credits_only:
        transactions = [
            tx for tx in transactions
            if is_benefit_credit(tx.amount, tx.description, card.issuer, tx.type)
        ]

    return CardTransactionsResponse(
        card_id=card_id,
        imported_at=card_store.imported_at,
        transactions=transactions,
        total=len(transactions),
    )


@router.post("/{card_id}/transactions", response_model=CardTransactionsResponse)
def save_card_transactions(
    card_id: str,
    upload: CardTransactionsUpload,
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
    match_cache: MatchCache = Depends(get_match_cache),
    now: datetime = Depends(get_now),
):
    """Merge statement rows into the card's store; benefit usage is derived on read."""
    _get_card_or_404(catalog, card_id)
    card_store = user_store.save_card_transactions(store, card_id, upload.transactions, now=now)
    match_cache.invalidate(card_id)
    return CardTransactionsResponse(
        card_id=card_id,
        imported_at=card_store.imported_at,
        transactions=card_store.transactions,
        total=len(card_store.transactions),
    )
