"""Card schemas."""
from pydantic import BaseModel, Field

from app.schemas.benefit import BenefitDefinition


class CardDefinition(BaseModel):
    """Credit card configuration (seeded from YAML files)."""

    model_config = {"frozen": True}

    id: str
    name: str
    issuer: str
    annual_fee: int = 0
    benefits_url: str | None = None


class CardResponse(CardDefinition):
    """Card with its benefit definitions."""

    benefits: list[BenefitDefinition] = Field(default_factory=list)
