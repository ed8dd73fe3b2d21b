"""API dependencies."""
from datetime import datetime, timezone

from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker

from app.config import get_settings
from app.database import SessionLocal
from app.services.benefit_matcher import MatchCache
from app.services.card_config_loader import BenefitCatalog, load_catalog
from app.services.user_store import UserStateStore


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_catalog(request: Request) -> BenefitCatalog:
    """Catalog loaded at startup, or loaded on demand when the app has none."""
    catalog = getattr(request.app.state, "catalog", None)
    if catalog is None:
        catalog = load_catalog(get_settings().configs_dir)
        request.app.state.catalog = catalog
    return catalog


def get_match_cache(request: Request) -> MatchCache:
    cache = getattr(request.app.state, "match_cache", None)
    if cache is None:
        cache = MatchCache()
        request.app.state.match_cache = cache
    return cache


def get_user_store(session_factory: sessionmaker = Depends(get_session_factory)) -> UserStateStore:
    return UserStateStore(session_factory, get_settings().store_key)


def get_now() -> datetime:
    """Reference clock for reconciliation; overridden in tests."""
    return datetime.now(timezone.utc)
