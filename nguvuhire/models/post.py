"""Minimal post documents: the boost flow only needs existence and ownership."""

from datetime import datetime
from typing import Type

from beanie import Document
from pydantic import Field


class JobPost(Document):
    title: str
    created_by: str  # user id
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "jobs"
        indexes = [[("created_by", 1)]]


class AvailabilityPost(Document):
    title: str
    created_by: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "availabilities"
        indexes = [[("created_by", 1)]]


POST_MODELS: dict[str, Type[Document]] = {
    "job": JobPost,
    "availability": AvailabilityPost,
}
