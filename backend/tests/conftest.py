import os
import sys
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("STORE_KEY", "test-benefits")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.database import Base
from app.models.user_document import UserDocument  # noqa: F401
from app.schemas.benefit import BenefitDefinition, PeriodDefinition
from app.schemas.card import CardDefinition
from app.services.benefit_periods import end_of_day, generate_periods, start_of_day
from app.services.card_config_loader import BenefitCatalog
from app.services.user_store import UserStateStore

FIXED_NOW = datetime(2025, 5, 15, 12, 0, tzinfo=timezone.utc)


def utc(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


def make_definition(
    benefit_id="test-benefit",
    card_id="amex-platinum",
    credit_amount=400,
    reset_frequency="quarterly",
    year=2025,
    enrollment_required=False,
):
    periods = [
        PeriodDefinition(id=period_id, start_date=start_of_day(start), end_date=end_of_day(end))
        for period_id, start, end in generate_periods(reset_frequency, date(year, 1, 1), date(year, 12, 31))
    ]
    return BenefitDefinition(
        id=benefit_id,
        card_id=card_id,
        name=benefit_id.replace("-", " ").title(),
        credit_amount=credit_amount,
        reset_frequency=reset_frequency,
        start_date=start_of_day(date(year, 1, 1)),
        end_date=end_of_day(date(year, 12, 31)),
        periods=tuple(periods) or None,
        enrollment_required=enrollment_required,
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return UserStateStore(session_factory, "test-benefits")


@pytest.fixture
def catalog():
    cards = [
        CardDefinition(id="amex-platinum", name="American Express Platinum", issuer="amex", annual_fee=895),
        CardDefinition(id="chase-sapphire-reserve", name="Chase Sapphire Reserve", issuer="chase", annual_fee=795),
        CardDefinition(id="capital-one-venture-x", name="Capital One Venture X", issuer="capital-one", annual_fee=395),
    ]
    definitions = [
        make_definition("amex-uber-cash", reset_frequency="monthly", credit_amount=180),
        make_definition("amex-saks", reset_frequency="semiannual", credit_amount=100, enrollment_required=True),
        make_definition("amex-clear-plus", reset_frequency="annual", credit_amount=209),
        make_definition("csr-travel-credit", card_id="chase-sapphire-reserve", reset_frequency="annual", credit_amount=300),
        make_definition("csr-lyft", card_id="chase-sapphire-reserve", reset_frequency="monthly", credit_amount=120),
        make_definition(
            "venture-x-travel-credit", card_id="capital-one-venture-x", reset_frequency="annual", credit_amount=300
        ),
    ]
    return BenefitCatalog.build(cards, definitions)
