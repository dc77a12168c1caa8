from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class CreditBalance(Document):
    """Boost credits per user. Only mutated through conditional $inc updates."""
    user_id: Indexed(str, unique=True)
    credits_available: int = Field(default=0, ge=0)
    credits_used: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "user_boost_credits"
