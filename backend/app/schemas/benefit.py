"""Benefit schemas."""
from pydantic import BaseModel, Field, model_validator

from app.schemas.transaction import CardTransactionStore, StoredTransaction
from app.schemas.types import BenefitStatus, ResetFrequency, UtcDatetime


class PeriodDefinition(BaseModel):
    """A sub-interval of a benefit cycle with an equal share of the credit."""

    id: str
    start_date: UtcDatetime
    end_date: UtcDatetime


class BenefitDefinition(BaseModel):
    """Immutable benefit template (seeded from YAML)."""

    model_config = {"frozen": True}

    id: str
    card_id: str
    name: str
    short_description: str = ""
    credit_amount: float = Field(gt=0)
    reset_frequency: ResetFrequency = "annual"
    start_date: UtcDatetime
    end_date: UtcDatetime
    periods: tuple[PeriodDefinition, ...] | None = None
    enrollment_required: bool = False
    category: str = "other"
    notes: str | None = None

    @model_validator(mode="after")
    def check_dates(self) -> "BenefitDefinition":
        if self.end_date <= self.start_date:
            raise ValueError(f"Benefit {self.id}: end_date must be after start_date")
        if self.periods is not None:
            if not self.periods:
                raise ValueError(f"Benefit {self.id}: periods must not be empty when given")
            for earlier, later in zip(self.periods, self.periods[1:]):
                if later.start_date < earlier.start_date:
                    raise ValueError(f"Benefit {self.id}: periods must be in ascending order")
        return self

    @property
    def segment_value(self) -> float:
        """Value of one period (or the whole credit when there are none)."""
        if self.periods:
            return self.credit_amount / len(self.periods)
        return self.credit_amount


class PeriodUserState(BaseModel):
    """User-recorded usage for one period."""

    transactions: list[StoredTransaction] = Field(default_factory=list)
    used_amount: float = 0  # Legacy manual entry, superseded by transactions


class BenefitUserState(BaseModel):
    """Mutable per-benefit user state."""

    enrolled: bool = False
    ignored: bool = False
    activation_acknowledged: bool = False
    activation_acknowledged_at: UtcDatetime | None = None
    transactions: list[StoredTransaction] = Field(default_factory=list)
    periods: dict[str, PeriodUserState] | None = None
    current_used: float = 0  # Aggregate usage recorded before per-period tracking


class UserBenefitsDocument(BaseModel):
    """The whole persisted user-state document."""

    benefits: dict[str, BenefitUserState] = Field(default_factory=dict)
    import_notes: dict[str, str] = Field(default_factory=dict)
    card_transactions: dict[str, CardTransactionStore] = Field(default_factory=dict)


class ResolvedPeriod(BaseModel):
    """A period after reconciliation."""

    id: str
    start_date: UtcDatetime
    end_date: UtcDatetime
    used_amount: float
    status: BenefitStatus
    transactions: list[StoredTransaction] = Field(default_factory=list)
    usage_inferred: bool = False  # Back-filled or claimed elsewhere
    is_current: bool = False
    time_progress: float | None = None  # Presentation only
    days_remaining: int | None = None  # Presentation only


class BenefitSnapshot(BaseModel):
    """Resolved, point-in-time view of a benefit."""

    id: str
    card_id: str
    name: str
    short_description: str
    category: str
    notes: str | None = None
    credit_amount: float
    reset_frequency: ResetFrequency
    enrollment_required: bool
    enrolled: bool
    auto_enrolled_at: UtcDatetime | None = None
    ignored: bool
    activation_acknowledged: bool
    effective_start_date: UtcDatetime
    effective_end_date: UtcDatetime
    periods: list[ResolvedPeriod] | None = None
    current_used: float
    status: BenefitStatus
    has_started: bool = True
    claimed_elsewhere_year: int | None = None
    transactions: list[StoredTransaction] = Field(default_factory=list)

    @property
    def segment_value(self) -> float:
        if self.periods:
            return self.credit_amount / len(self.periods)
        return self.credit_amount


class Stats(BaseModel):
    """Summary counts over a set of snapshots."""

    total_benefits: int = 0
    total_value: float = 0
    used_value: float = 0
    current_period_completed_count: int = 0
    ytd_completed_periods: int = 0
    ytd_total_periods: int = 0
    pending_count: int = 0
    missed_count: int = 0


class CardStats(Stats):
    """Stats for a single card."""

    card_id: str
    card_name: str
    annual_fee: int = 0


class CardStatsResponse(BaseModel):
    """Stats for every card plus the overall fee total."""

    cards: list[CardStats]
    total_annual_fee: int


class BenefitUpdateRequest(BaseModel):
    """Request to change a benefit's visibility."""

    ignored: bool


class ImportNoteUpdate(BaseModel):
    """Request to save a card's import note."""

    note: str = Field("", max_length=2000)


class ImportNoteResponse(BaseModel):
    card_id: str
    note: str


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class UpcomingExpiration(BaseModel):
    """A pending benefit, or its current period, that ends soon."""

    benefit_id: str
    card_id: str
    name: str
    period_id: str | None = None
    end_date: UtcDatetime
    remaining_value: float
    days_remaining: int
    urgent: bool = False  # Ends within a week
