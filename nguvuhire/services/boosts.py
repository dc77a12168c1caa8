"""Post boosts paid for with one credit each."""

from datetime import datetime, timedelta

from beanie import PydanticObjectId
from pymongo.errors import DuplicateKeyError

from nguvuhire.core import audit
from nguvuhire.core.exceptions import AlreadyBoostedError, BadRequestError, ForbiddenError, NotFoundError
from nguvuhire.core.logging import get_logger
from nguvuhire.models.boost_record import BoostRecord
from nguvuhire.models.credit_balance import CreditBalance
from nguvuhire.models.post import POST_MODELS
from nguvuhire.services import credits as credits_service

log = get_logger(__name__)

BOOST_DURATION_DAYS = {"standard": 7, "premium": 14, "ultra": 30}
DEFAULT_BOOST_DAYS = 7


def duration_days(boost_type: str | None) -> int:
    return BOOST_DURATION_DAYS.get(boost_type or "", DEFAULT_BOOST_DAYS)


async def get_post(post_id: str, post_type: str):
    model = POST_MODELS.get(post_type)
    if model is None:
        raise BadRequestError(f"Invalid post type: {post_type}")
    if not PydanticObjectId.is_valid(post_id):
        raise NotFoundError("Post not found")
    post = await model.get(PydanticObjectId(post_id))
    if not post:
        raise NotFoundError("Post not found")
    return post


async def get_owned_post(post_id: str, post_type: str, user_id: str):
    post = await get_post(post_id, post_type)
    if post.created_by != user_id:
        raise ForbiddenError("You can only boost your own posts")
    return post


async def _end_boost(record: BoostRecord) -> None:
    record.is_active = False
    record.active_slot = str(record.id)
    await record.save()


async def expire_boosts(now: datetime | None = None, post_id: str | None = None) -> int:
    """Deactivate boosts past boost_end. Returns how many were ended."""
    now = now or datetime.utcnow()
    filters = [BoostRecord.is_active == True, BoostRecord.boost_end <= now]  # noqa: E712
    if post_id:
        filters.append(BoostRecord.post_id == post_id)
    expired = await BoostRecord.find(*filters).to_list()
    for record in expired:
        await _end_boost(record)
    if expired:
        log.info("boosts_expired", count=len(expired))
    return len(expired)


async def get_active_boost(post_id: str) -> BoostRecord | None:
    return await BoostRecord.find_one(
        BoostRecord.post_id == post_id,
        BoostRecord.is_active == True,  # noqa: E712
    )


async def apply_boost(
    post_id: str,
    post_type: str,
    user_id: str,
    boost_type: str = "standard",
    order_reference: str | None = None,
) -> tuple[BoostRecord, CreditBalance]:
    """
    Spend one credit and activate a boost on an owned post.
    Returns (boost_record, balance_after).
    If persisting the boost fails after the debit, the credit is refunded.
    """
    await get_owned_post(post_id, post_type, user_id)

    now = datetime.utcnow()
    await expire_boosts(now, post_id=post_id)
    if await get_active_boost(post_id):
        raise AlreadyBoostedError()

    balance = await credits_service.debit_one(user_id, reference_type="boosted_post", reference_id=post_id)

    record = BoostRecord(
        post_id=post_id,
        post_type=post_type,
        user_id=user_id,
        boost_type=boost_type,
        credits_used=1,
        boost_start=now,
        boost_end=now + timedelta(days=duration_days(boost_type)),
        order_reference=order_reference,
    )
    try:
        await record.insert()
    except DuplicateKeyError:
        # A concurrent request activated a boost on this post first
        await credits_service.refund_one(user_id, reference_type="boosted_post", reference_id=post_id)
        raise AlreadyBoostedError()
    except Exception:
        log.exception("boost_insert_failed", post_id=post_id, user_id=user_id)
        await credits_service.refund_one(user_id, reference_type="boosted_post", reference_id=post_id)
        raise

    log.info(
        "post_boosted",
        post_id=post_id,
        post_type=post_type,
        boost_type=boost_type,
        boost_end=record.boost_end.isoformat(),
    )
    await audit.record(
        "post_boosted",
        "boosted_post",
        str(record.id),
        actor_user_id=user_id,
        order_reference=order_reference,
        post_id=post_id,
        boost_type=boost_type,
    )
    return record, balance
