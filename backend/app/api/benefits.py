"""Benefits API endpoints."""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_catalog, get_match_cache, get_now, get_user_store
from app.config import get_settings
from app.schemas.benefit import (
    BenefitSnapshot,
    BenefitUpdateRequest,
    MessageResponse,
    Stats,
    UpcomingExpiration,
)
from app.services import benefits as benefit_service
from app.services import user_store
from app.services.benefit_matcher import MatchCache
from app.services.card_config_loader import BenefitCatalog
from app.services.reminders import get_upcoming_expirations

router = APIRouter(prefix="/benefits", tags=["benefits"])


def _not_found(benefit_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Benefit not found: {benefit_id}",
    )


@router.get("", response_model=list[BenefitSnapshot])
def list_benefits(
    card_id: str | None = None,
    include_ignored: bool = False,
    year: int | None = Query(None, ge=1900, le=9999),
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
    match_cache: MatchCache = Depends(get_match_cache),
    now: datetime = Depends(get_now),
):
    """Get benefit snapshots, optionally for one card and one year."""
    if card_id and catalog.get_card(card_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Card not found: {card_id}",
        )
    return benefit_service.get_benefits(
        catalog, store, card_id, include_ignored, year, now=now, match_cache=match_cache
    )


@router.get("/stats", response_model=Stats)
def get_stats(
    year: int | None = Query(None, ge=1900, le=9999),
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
    match_cache: MatchCache = Depends(get_match_cache),
    now: datetime = Depends(get_now),
):
    """Get summary stats across all visible benefits."""
    return benefit_service.get_stats(catalog, store, year, now=now, match_cache=match_cache)


@router.get("/reminders", response_model=list[UpcomingExpiration])
def get_reminders(
    days: int | None = Query(None, ge=1, le=366),
    include_ignored: bool = False,
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
    match_cache: MatchCache = Depends(get_match_cache),
    now: datetime = Depends(get_now),
):
    """Get pending benefits that lapse soon, soonest first."""
    snapshots = benefit_service.get_benefits(
        catalog, store, include_ignored=True, year=now.year, now=now, match_cache=match_cache
    )
    return get_upcoming_expirations(
        snapshots,
        now=now,
        days=days or get_settings().reminder_days,
        include_ignored=include_ignored,
    )


@router.delete("/user-data", response_model=MessageResponse)
def reset_user_data(
    store: user_store.UserStateStore = Depends(get_user_store),
    match_cache: MatchCache = Depends(get_match_cache),
):
    """Delete all stored benefit state, notes and imported transactions."""
    user_store.reset_all(store)
    match_cache.clear()
    return MessageResponse(message="All user data cleared")


@router.get("/{benefit_id}", response_model=BenefitSnapshot)
def get_benefit(
    benefit_id: str,
    year: int | None = Query(None, ge=1900, le=9999),
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
    match_cache: MatchCache = Depends(get_match_cache),
    now: datetime = Depends(get_now),
):
    snapshot = benefit_service.get_benefit(catalog, store, benefit_id, year, now=now, match_cache=match_cache)
    if snapshot is None:
        raise _not_found(benefit_id)
    return snapshot


@router.patch("/{benefit_id}", response_model=BenefitSnapshot)
def update_benefit(
    benefit_id: str,
    request: BenefitUpdateRequest,
    year: int | None = Query(None, ge=1900, le=9999),
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
    match_cache: MatchCache = Depends(get_match_cache),
    now: datetime = Depends(get_now),
):
    """Hide or show a benefit."""
    snapshot = benefit_service.update_benefit(
        catalog, store, benefit_id, request.ignored, year, now=now, match_cache=match_cache
    )
    if snapshot is None:
        raise _not_found(benefit_id)
    return snapshot


@router.post("/{benefit_id}/enrollment", response_model=BenefitSnapshot)
def toggle_enrollment(
    benefit_id: str,
    year: int | None = Query(None, ge=1900, le=9999),
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
    match_cache: MatchCache = Depends(get_match_cache),
    now: datetime = Depends(get_now),
):
    snapshot = benefit_service.toggle_enrollment(catalog, store, benefit_id, year, now=now, match_cache=match_cache)
    if snapshot is None:
        raise _not_found(benefit_id)
    return snapshot


@router.post("/{benefit_id}/activation", response_model=BenefitSnapshot)
def toggle_activation(
    benefit_id: str,
    year: int | None = Query(None, ge=1900, le=9999),
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
    match_cache: MatchCache = Depends(get_match_cache),
    now: datetime = Depends(get_now),
):
    """Flip the user's acknowledgement that the benefit has been activated."""
    snapshot = benefit_service.toggle_activation(catalog, store, benefit_id, year, now=now, match_cache=match_cache)
    if snapshot is None:
        raise _not_found(benefit_id)
    return snapshot
