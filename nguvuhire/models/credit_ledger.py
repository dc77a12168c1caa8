import uuid
from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel


def _auto_key() -> str:
    return f"auto:{uuid.uuid4()}"


class CreditLedgerEntry(Document):
    user_id: str
    amount: int  # positive = credit, negative = debit
    balance_after: int
    reason: Literal["free_allotment", "purchase", "boost", "boost_refund"]
    reference_type: str | None = None  # payment_order, boosted_post
    reference_id: str | None = None
    # Caller-supplied keys make a grant apply once per user; unkeyed rows get a random one
    idempotency_key: str = Field(default_factory=_auto_key)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "credit_ledger"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            IndexModel([("user_id", ASCENDING), ("idempotency_key", ASCENDING)], unique=True),
        ]
