from datetime import datetime
from typing import Any, Literal

from beanie import Document
from pydantic import Field

AuditEventType = Literal["payment_completed", "payment_failed", "post_boosted", "user_verified"]


class AuditLog(Document):
    """Money-moving events, one row each. Never updated after insert."""
    event_type: AuditEventType
    actor_user_id: str | None = None  # None when the reconciler acted
    subject_type: Literal["payment_order", "boosted_post", "user"]
    subject_id: str
    order_reference: str | None = None
    request_id: str | None = None  # request or job id bound in the log context
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("order_reference", 1)],
            [("subject_type", 1), ("subject_id", 1)],
            [("actor_user_id", 1), ("created_at", -1)],
        ]
