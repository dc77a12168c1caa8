from datetime import datetime
from typing import Literal

from beanie import Document, Indexed
from pydantic import Field


class User(Document):
    """Profile owned by the auth provider; this service only reads role and writes verification."""
    email: Indexed(str, unique=True)
    name: str = ""
    phone: str | None = None
    country_code: str = "KE"
    role: Literal["job_seeker", "employer", "admin"] = "job_seeker"
    is_verified: bool = False
    verification_payment_id: str | None = None
    verified_at: datetime | None = None
    session_version: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
