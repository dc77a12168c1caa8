"""Dead letter for worker runs that raised."""

from datetime import datetime
from typing import Literal

from beanie import Document
from pydantic import Field

JobName = Literal["reconcile_payments", "expire_boosts"]


class FailedJob(Document):
    job_name: JobName
    job_id: str
    job_try: int = 1  # arq attempt number
    error_type: str
    reason: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "failed_jobs"
        indexes = [[("job_name", 1), ("created_at", -1)]]
