"""Transaction schemas."""
from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.types import MatchConfidence, UtcDatetime

TransactionKey = tuple[str, str, float]


class StoredTransaction(BaseModel):
    """Transaction evidence kept in the user-state document."""

    date: UtcDatetime
    description: str
    amount: float  # Signed as recorded
    type: str | None = None  # Issuer-specific type tag (Chase "Adjustment", ...)

    @property
    def key(self) -> TransactionKey:
        """Uniqueness key used for deduplication."""
        return (self.date.isoformat(), self.description, self.amount)


class NormalizedTransaction(BaseModel):
    """A statement row mapped onto issuer-independent fields."""

    date: UtcDatetime
    description: str
    amount: float  # Original sign from the export
    extended_details: str | None = None
    type: str | None = None
    category: str | None = None
    reference: str | None = None

    @property
    def combined_text(self) -> str:
        """Description and extended details, lowercased, for keyword rules."""
        return f"{self.description} {self.extended_details or ''}".strip().lower()

    def to_stored(self, amount: float | None = None) -> StoredTransaction:
        return StoredTransaction(
            date=self.date,
            description=self.description,
            amount=self.amount if amount is None else amount,
            type=self.type,
        )


class MatchedCredit(BaseModel):
    """A candidate credit bound to a benefit."""

    transaction: NormalizedTransaction
    benefit_id: str | None  # None if unmatched
    benefit_name: str | None  # None when the benefit id is not in the candidate set
    period_id: str | None = None  # Resolved later, during aggregation
    credit_amount: float  # Absolute value of the transaction amount
    confidence: MatchConfidence = "high"

    def to_stored(self) -> StoredTransaction:
        return self.transaction.to_stored(amount=self.credit_amount)


class ImportResult(BaseModel):
    """Outcome of matching one statement's credits."""

    matched_credits: list[MatchedCredit]
    unmatched_credits: list[NormalizedTransaction]
    total_matched: int
    total_unmatched: int
    total_transactions: int = 0


ImportStatus = Literal["ok", "malformed_file", "unsupported_issuer", "no_credits"]


class ImportResponse(BaseModel):
    """Import entry-point response: either an error classification or a result."""

    status: ImportStatus
    card_id: str
    message: str | None = None
    result: ImportResult | None = None
    transactions: list[NormalizedTransaction] = Field(default_factory=list)


class ImportConfirmResponse(BaseModel):
    """Response after recording matched credits."""

    status: ImportStatus
    card_id: str
    message: str | None = None
    benefits_updated: list[str] = Field(default_factory=list)
    transactions_recorded: int = 0


class CardTransactionStore(BaseModel):
    """A card's imported statement rows, matched to benefits at read time."""

    imported_at: UtcDatetime
    transactions: list[StoredTransaction] = Field(default_factory=list)


class CardTransactionsResponse(BaseModel):
    """Card-level transaction list."""

    card_id: str
    imported_at: UtcDatetime | None = None
    transactions: list[StoredTransaction]
    total: int


class CardTransactionsUpload(BaseModel):
    """Statement rows to merge into a card's transaction store."""

    transactions: list[StoredTransaction] = Field(min_length=1)
