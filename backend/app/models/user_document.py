"""Persisted user-state document model."""
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text

from app.database import Base


class UserDocument(Base):
    """Whole-document JSON blob holding a user's benefit state.

    Rows are replaced as a unit; ``version`` is bumped on every write so
    other processes can tell the document changed underneath them.
    """

    __tablename__ = "user_documents"

    key = Column(String(100), primary_key=True)
    payload = Column(Text, nullable=False, default="{}")
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(String(26), default=lambda: datetime.utcnow().isoformat(), onupdate=lambda: datetime.utcnow().isoformat())
