"""Create locally-tracked Pesapal orders before redirecting to checkout."""

from datetime import datetime, timedelta

from beanie import PydanticObjectId
from beanie.operators import In
from pydantic import BaseModel

from nguvuhire.core.config import get_settings
from nguvuhire.core.exceptions import AppError, BadRequestError, CredentialsError, NotFoundError
from nguvuhire.core.logging import bind_payment_context, get_logger
from nguvuhire.core.security import new_merchant_reference
from nguvuhire.models.payment_order import OPEN_STATUSES, PaymentOrder
from nguvuhire.models.user import User
from nguvuhire.services.boosts import get_owned_post
from nguvuhire.services.pesapal import BillingAddress, OrderRequest, PesapalClient

log = get_logger(__name__)

ORDER_KINDS = ("verification", "boost")
DESCRIPTIONS = {"verification": "Account Verification", "boost": "Post Boost"}


class CheckoutSession(BaseModel):
    reference: str
    redirect_url: str
    tracking_id: str | None = None
    reused: bool = False


def _billing_address(user: User) -> BillingAddress:
    first, _, last = (user.name or "").partition(" ")
    return BillingAddress(
        email_address=user.email,
        phone_number=user.phone or "",
        country_code=user.country_code or "KE",
        first_name=first or "Nguvu",
        last_name=last or "Hire",
    )


async def _find_reusable(user_id: str, kind: str, post_id: str | None) -> PaymentOrder | None:
    """An open order for the same purchase, recent enough to send the user back to."""
    ttl = get_settings().order_dedupe_ttl_seconds
    if ttl <= 0:
        return None
    since = datetime.utcnow() - timedelta(seconds=ttl)
    return await PaymentOrder.find_one(
        PaymentOrder.user_id == user_id,
        PaymentOrder.kind == kind,
        PaymentOrder.target_post_id == post_id,
        In(PaymentOrder.status, list(OPEN_STATUSES)),
        PaymentOrder.created_at >= since,
        PaymentOrder.redirect_url != None,  # noqa: E711
    )


async def _mark_failed(order: PaymentOrder, reason: str) -> None:
    await order.set({
        PaymentOrder.status: "failed",
        PaymentOrder.failure_reason: reason[:500],
        PaymentOrder.updated_at: datetime.utcnow(),
    })


async def create_order(
    gateway: PesapalClient,
    kind: str,
    amount: float,
    user_id: str,
    post_id: str | None = None,
    post_type: str = "job",
    boost_type: str = "standard",
) -> CheckoutSession:
    """Persist a pending order, submit it to Pesapal and return the hosted checkout URL."""
    settings = get_settings()
    if kind not in ORDER_KINDS:
        raise BadRequestError(f"Invalid payment type: {kind}")
    if amount is None or amount <= 0:
        raise BadRequestError("Amount must be positive")
    price = settings.price_for(kind)
    if amount < price:
        raise BadRequestError(f"Amount is below the {kind} price", details={"price": price})
    if not settings.pesapal_callback_url or not settings.pesapal_ipn_id:
        raise CredentialsError("Pesapal callback URL or IPN id is not configured")

    user = await User.get(PydanticObjectId(user_id)) if PydanticObjectId.is_valid(user_id) else None
    if not user:
        raise NotFoundError("User not found")
    if kind == "boost":
        if not post_id:
            raise BadRequestError("postId is required for boost payments")
        await get_owned_post(post_id, post_type, user_id)
    else:
        post_id = None

    existing = await _find_reusable(user_id, kind, post_id)
    if existing:
        log.info("order_reused", reference=existing.reference, kind=kind)
        return CheckoutSession(
            reference=existing.reference,
            redirect_url=existing.redirect_url,
            tracking_id=existing.provider_tracking_id,
            reused=True,
        )

    reference = new_merchant_reference(kind)
    bind_payment_context(reference=reference)
    order = PaymentOrder(
        reference=reference,
        user_id=user_id,
        kind=kind,
        amount=float(amount),
        currency=settings.payment_currency,
        description=DESCRIPTIONS[kind],
        target_post_id=post_id,
        target_post_type=post_type if kind == "boost" else None,
        boost_type=boost_type if kind == "boost" else None,
    )
    await order.insert()
    log.info("order_created", kind=kind, amount=order.amount, currency=order.currency)

    request = OrderRequest(
        id=reference,
        currency=order.currency,
        amount=order.amount,
        description=order.description,
        callback_url=settings.pesapal_callback_url,
        notification_id=settings.pesapal_ipn_id,
        billing_address=_billing_address(user),
    )
    try:
        result = await gateway.submit_order(request)
    except AppError as e:
        await _mark_failed(order, f"submit_failed: {e.message}")
        log.warning("order_submit_failed", code=e.code, message=e.message)
        raise

    await order.set({
        PaymentOrder.provider_tracking_id: result.tracking_id,
        PaymentOrder.redirect_url: result.redirect_url,
        PaymentOrder.updated_at: datetime.utcnow(),
    })
    bind_payment_context(tracking_id=result.tracking_id)
    return CheckoutSession(reference=reference, redirect_url=result.redirect_url, tracking_id=result.tracking_id)
