"""Use Your Benefits - Credit Card Benefit Usage Tracker API."""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: create tables and load card configs
    from app.database import Base, engine, ensure_sqlite_directory
    from app.services.benefit_matcher import MatchCache
    from app.services.card_config_loader import load_catalog

    # Import all models so they're registered with Base
    from app import models  # noqa: F401

    ensure_sqlite_directory(settings.database_url)
    Base.metadata.create_all(bind=engine)

    app.state.catalog = load_catalog(settings.configs_dir)
    app.state.match_cache = MatchCache()
    logger.info(f"{settings.app_name} started with {len(app.state.catalog.cards)} cards")

    yield
    # Shutdown: drop cached matches
    app.state.match_cache.clear()


app = FastAPI(
    title=settings.app_name,
    description="Track credit card benefit usage and never miss a statement credit",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


# Import and include routers
from app.api import benefits, cards, imports, transactions  # noqa: E402

app.include_router(cards.router, prefix="/api")
app.include_router(transactions.router, prefix="/api")
app.include_router(benefits.router, prefix="/api")
app.include_router(imports.router, prefix="/api")
