import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from nguvuhire.core.config import get_settings
from nguvuhire.models.audit_log import AuditLog
from nguvuhire.models.boost_record import BoostRecord
from nguvuhire.models.credit_balance import CreditBalance
from nguvuhire.models.credit_ledger import CreditLedgerEntry
from nguvuhire.models.failed_job import FailedJob
from nguvuhire.models.payment_order import PaymentOrder
from nguvuhire.models.post import AvailabilityPost, JobPost
from nguvuhire.models.subscription import SubscriptionPlan, UserSubscription
from nguvuhire.models.user import User

DOCUMENT_MODELS = [
    User,
    JobPost,
    AvailabilityPost,
    PaymentOrder,
    CreditBalance,
    CreditLedgerEntry,
    BoostRecord,
    SubscriptionPlan,
    UserSubscription,
    AuditLog,
    FailedJob,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true)."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db(database=None) -> None:
    """Bind Beanie documents. Tests pass an in-memory database; otherwise connect from settings."""
    if database is None:
        settings = get_settings()
        kwargs = {}
        if _use_tls(settings.mongodb_uri):
            kwargs["tlsCAFile"] = certifi.where()
        client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
        database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
