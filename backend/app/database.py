"""Database connection and session management."""
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import get_settings

settings = get_settings()

# SQLite requires check_same_thread=False for FastAPI
connect_args = {"check_same_thread": False} if "sqlite" in settings.database_url else {}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def ensure_sqlite_directory(raw_url: str) -> Path | None:
    """Create the parent directory of a file-backed SQLite database."""
    parsed_url = make_url(raw_url)
    if not parsed_url.drivername.startswith("sqlite"):
        return None
    database_path = parsed_url.database
    if not database_path or database_path == ":memory:":
        return None

    parent = Path(database_path).parent
    parent.mkdir(parents=True, exist_ok=True)
    return parent


@contextmanager
def get_db_context(
    session_factory: sessionmaker = SessionLocal,
) -> Generator[Session, None, None]:
    """Context manager for database session (for use outside of FastAPI)."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
