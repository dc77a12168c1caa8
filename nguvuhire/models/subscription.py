from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field


class SubscriptionPlan(Document):
    name: str
    price_monthly: float = 0.0
    boost_credits_per_month: int = 1
    features: list[str] = Field(default_factory=list)
    is_active: bool = True

    class Settings:
        name = "subscription_plans"


class UserSubscription(Document):
    user_id: str
    plan_id: str
    status: Literal["active", "cancelled", "expired"] = "active"
    current_period_end: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "user_subscriptions"
        indexes = [[("user_id", 1), ("status", 1)]]
