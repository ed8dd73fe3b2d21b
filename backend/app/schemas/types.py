"""Shared field types for schemas."""
from datetime import date, datetime, time, timezone
from typing import Annotated, Any, Literal

from dateutil.parser import isoparse
from pydantic import BeforeValidator

BenefitStatus = Literal["pending", "completed", "missed"]
ResetFrequency = Literal["annual", "semiannual", "quarterly", "monthly"]
MatchConfidence = Literal["high", "low"]


def coerce_utc(value: Any) -> Any:
    """Normalize dates, ISO strings and naive datetimes to aware UTC datetimes."""
    if isinstance(value, str):
        value = isoparse(value.strip())
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, BeforeValidator(coerce_utc)]
