"""Cards API endpoints."""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_catalog, get_match_cache, get_now, get_user_store
from app.schemas.benefit import CardStatsResponse, ImportNoteResponse, ImportNoteUpdate
from app.schemas.card import CardResponse
from app.services import benefits as benefit_service
from app.services import user_store
from app.services.benefit_matcher import MatchCache
from app.services.card_config_loader import BenefitCatalog

router = APIRouter(prefix="/cards", tags=["cards"])


def _ensure_card(catalog: BenefitCatalog, card_id: str) -> None:
    if catalog.get_card(card_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Card not found: {card_id}",
        )


@router.get("", response_model=list[CardResponse])
def list_cards(catalog: BenefitCatalog = Depends(get_catalog)):
    """Get all configured cards with their benefit definitions."""
    return [
        CardResponse(**card.model_dump(), benefits=catalog.definitions_for_card(card.id))
        for card in catalog.cards
    ]


@router.get("/stats", response_model=CardStatsResponse)
def get_card_stats(
    year: int | None = Query(None, ge=1900, le=9999),
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
    match_cache: MatchCache = Depends(get_match_cache),
    now: datetime = Depends(get_now),
):
    """Get per-card stats and the total of annual fees."""
    return benefit_service.get_card_stats(catalog, store, year, now=now, match_cache=match_cache)


@router.get("/{card_id}/import-note", response_model=ImportNoteResponse)
def get_import_note(
    card_id: str,
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
):
    _ensure_card(catalog, card_id)
    return ImportNoteResponse(card_id=card_id, note=user_store.get_import_note(store, card_id))


@router.put("/{card_id}/import-note", response_model=ImportNoteResponse)
def save_import_note(
    card_id: str,
    request: ImportNoteUpdate,
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
):
    """Save a free-text note about a card's imports; an empty note removes it."""
    _ensure_card(catalog, card_id)
    note = user_store.save_import_note(store, card_id, request.note)
    return ImportNoteResponse(card_id=card_id, note=note)
