from nguvuhire.models.user import User
from nguvuhire.models.post import AvailabilityPost, JobPost
from nguvuhire.models.payment_order import PaymentOrder
from nguvuhire.models.credit_balance import CreditBalance
from nguvuhire.models.credit_ledger import CreditLedgerEntry
from nguvuhire.models.boost_record import BoostRecord
from nguvuhire.models.subscription import SubscriptionPlan, UserSubscription
from nguvuhire.models.audit_log import AuditLog
from nguvuhire.models.failed_job import FailedJob

__all__ = [
    "User",
    "JobPost",
    "AvailabilityPost",
    "PaymentOrder",
    "CreditBalance",
    "CreditLedgerEntry",
    "BoostRecord",
    "SubscriptionPlan",
    "UserSubscription",
    "AuditLog",
    "FailedJob",
]
