"""SQLAlchemy models package."""
from app.models.user_document import UserDocument

__all__ = [
    "UserDocument",
]
