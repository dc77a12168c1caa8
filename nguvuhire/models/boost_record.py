from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel

ACTIVE_SLOT = "active"


class BoostRecord(Document):
    post_id: str
    post_type: Literal["job", "availability"]
    user_id: str
    boost_type: str = "standard"
    credits_used: int = 1
    boost_start: datetime = Field(default_factory=datetime.utcnow)
    boost_end: datetime
    is_active: bool = True
    order_reference: str | None = None
    # "active" while live, rewritten to the record id when the boost ends.
    # Unique with post_id: at most one live boost per post.
    active_slot: str = ACTIVE_SLOT

    class Settings:
        name = "boosted_posts"
        indexes = [
            IndexModel([("post_id", ASCENDING), ("active_slot", ASCENDING)], unique=True),
            [("is_active", 1), ("boost_end", 1)],
            [("user_id", 1)],
        ]
