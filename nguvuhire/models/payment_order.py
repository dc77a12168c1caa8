from datetime import datetime
from typing import Literal

from beanie import Document, Indexed
from pydantic import Field

OrderKind = Literal["verification", "boost"]
OrderStatus = Literal["pending", "ipn_received", "completed", "failed"]

OPEN_STATUSES = ("pending", "ipn_received")
TERMINAL_STATUSES = ("completed", "failed")


class PaymentOrder(Document):
    """Local record of a Pesapal checkout, keyed by our merchant reference."""
    reference: Indexed(str, unique=True)
    user_id: str
    kind: OrderKind
    amount: float
    currency: str = "USD"
    description: str = ""
    target_post_id: str | None = None
    target_post_type: Literal["job", "availability"] | None = None
    boost_type: str | None = None
    status: OrderStatus = "pending"
    provider_tracking_id: str | None = None
    redirect_url: str | None = None
    payment_status: str | None = None  # last status reported by Pesapal
    failure_reason: str | None = None
    ipn_count: int = 0
    last_checked_at: datetime | None = None
    completed_at: datetime | None = None
    fulfilling_at: datetime | None = None  # fulfilment claimed by a worker or request
    fulfilled_at: datetime | None = None  # side effects applied
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    class Settings:
        name = "payment_orders"
        indexes = [
            [("provider_tracking_id", 1)],
            [("user_id", 1), ("kind", 1), ("target_post_id", 1), ("status", 1)],
            [("status", 1), ("created_at", 1)],
        ]
