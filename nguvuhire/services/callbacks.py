"""Finalize Pesapal orders from the redirect callback, the IPN, or the reconciler.

All three entry points funnel into finalize_order. The move out of an open
status is a conditional update on the order document, so duplicate or
concurrent callbacks race safely and only the winner runs fulfil_order.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlencode

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import In, Inc, Or, Set

from nguvuhire.core import audit
from nguvuhire.core.config import get_settings
from nguvuhire.core.exceptions import (
    AlreadyBoostedError,
    CredentialsError,
    ForbiddenError,
    GatewayError,
    InsufficientCreditsError,
    NotFoundError,
    VerificationError,
)
from nguvuhire.core.logging import bind_payment_context, get_logger
from nguvuhire.models.payment_order import OPEN_STATUSES, PaymentOrder
from nguvuhire.models.user import User
from nguvuhire.services import boosts as boosts_service
from nguvuhire.services import credits as credits_service
from nguvuhire.services.pesapal import PesapalClient

log = get_logger(__name__)

# A claim older than this is treated as abandoned by a crashed process
FULFIL_CLAIM_SECONDS = 300


@dataclass
class FinalizeResult:
    order: PaymentOrder
    payment_status: str | None = None
    applied: bool = False  # this call moved the order to a terminal status


async def find_order(reference: str | None = None, tracking_id: str | None = None) -> PaymentOrder:
    order = None
    if reference:
        order = await PaymentOrder.find_one(PaymentOrder.reference == reference)
    elif tracking_id:
        order = await PaymentOrder.find_one(PaymentOrder.provider_tracking_id == tracking_id)
    if not order:
        raise NotFoundError("Payment order not found")
    return order


async def _transition(order: PaymentOrder, status: str, fields: dict[str, Any]) -> PaymentOrder | None:
    """Move an open order to a terminal status. Returns None if another caller got there first."""
    now = datetime.utcnow()
    updates = {PaymentOrder.status: status, PaymentOrder.updated_at: now, PaymentOrder.last_checked_at: now}
    updates.update(fields)
    return await PaymentOrder.find_one(
        PaymentOrder.reference == order.reference,
        In(PaymentOrder.status, list(OPEN_STATUSES)),
    ).update(Set(updates), response_type=UpdateResponse.NEW_DOCUMENT)


async def _fulfil_verification(order: PaymentOrder) -> None:
    user = await User.get(PydanticObjectId(order.user_id))
    if not user:
        raise NotFoundError("User not found")
    if not user.is_verified:
        user.is_verified = True
        user.verification_payment_id = order.reference
        user.verified_at = datetime.utcnow()
        user.updated_at = user.verified_at
        await user.save()
        await audit.record(
            "user_verified",
            "user",
            order.user_id,
            actor_user_id=order.user_id,
            order_reference=order.reference,
        )


async def _fulfil_boost(order: PaymentOrder) -> None:
    await credits_service.grant(
        order.user_id,
        1,
        "purchase",
        reference_type="payment_order",
        reference_id=order.reference,
        idempotency_key=f"order:{order.reference}:grant",
    )
    if not order.target_post_id:
        return
    try:
        await boosts_service.apply_boost(
            order.target_post_id,
            order.target_post_type or "job",
            order.user_id,
            order.boost_type or "standard",
            order_reference=order.reference,
        )
    except (AlreadyBoostedError, InsufficientCreditsError, ForbiddenError, NotFoundError) as e:
        # Purchased credit stays on the balance for a later boost
        log.info("boost_not_applied", post_id=order.target_post_id, reason=e.code)


def _claimable(now: datetime):
    """Completed, not yet fulfilled, and not claimed by a live fulfilment."""
    stale = now - timedelta(seconds=FULFIL_CLAIM_SECONDS)
    return (
        PaymentOrder.status == "completed",
        PaymentOrder.fulfilled_at == None,  # noqa: E711
        Or(PaymentOrder.fulfilling_at == None, PaymentOrder.fulfilling_at <= stale),  # noqa: E711
    )


async def fulfil_order(order: PaymentOrder) -> PaymentOrder:
    """Apply the side effects of a completed order. Safe to call again, including concurrently."""
    if order.status != "completed" or order.fulfilled_at:
        return order
    now = datetime.utcnow()
    claimed = await PaymentOrder.find_one(PaymentOrder.reference == order.reference, *_claimable(now)).update(
        Set({PaymentOrder.fulfilling_at: now}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if claimed is None:
        log.info("order_fulfil_skipped", reference=order.reference)
        return order
    order = claimed
    try:
        if order.kind == "verification":
            await _fulfil_verification(order)
        elif order.kind == "boost":
            await _fulfil_boost(order)
    except Exception:
        await order.set({PaymentOrder.fulfilling_at: None})
        raise
    now = datetime.utcnow()
    await order.set({PaymentOrder.fulfilled_at: now, PaymentOrder.updated_at: now})
    log.info("order_fulfilled", reference=order.reference, kind=order.kind)
    return order


async def finalize_order(
    gateway: PesapalClient,
    reference: str | None = None,
    tracking_id: str | None = None,
) -> FinalizeResult:
    order = await find_order(reference, tracking_id)
    bind_payment_context(reference=order.reference, tracking_id=tracking_id or order.provider_tracking_id)
    if order.is_terminal:
        return FinalizeResult(order=order, payment_status=order.payment_status)

    if tracking_id and order.provider_tracking_id and tracking_id != order.provider_tracking_id:
        raise VerificationError("Tracking id does not belong to this order")
    tracking_id = tracking_id or order.provider_tracking_id
    if not tracking_id:
        raise VerificationError("Order has no Pesapal tracking id")

    status = await gateway.get_status(tracking_id)
    if status.merchant_reference != order.reference:
        if status.merchant_reference:
            raise VerificationError("Pesapal reports a different merchant reference")
        if not order.provider_tracking_id:
            # Tracking id came only from the caller; Pesapal must confirm the pairing
            raise VerificationError("Pesapal did not confirm the merchant reference")

    if status.payment_status == "PENDING":
        await order.set({PaymentOrder.payment_status: status.payment_status, PaymentOrder.last_checked_at: datetime.utcnow()})
        return FinalizeResult(order=order, payment_status=status.payment_status)

    fields: dict[str, Any] = {
        PaymentOrder.payment_status: status.payment_status,
        PaymentOrder.provider_tracking_id: tracking_id,
    }
    if status.payment_status == "COMPLETED":
        fields[PaymentOrder.completed_at] = datetime.utcnow()
        updated = await _transition(order, "completed", fields)
    else:
        fields[PaymentOrder.failure_reason] = status.description or status.payment_status
        updated = await _transition(order, "failed", fields)

    if updated is None:
        # Duplicate callback lost the race; report the winner's outcome
        current = await find_order(reference=order.reference)
        return FinalizeResult(order=current, payment_status=current.payment_status)

    log.info("order_finalized", status=updated.status, payment_status=status.payment_status)
    await audit.record_order_outcome(updated, confirmation_code=status.confirmation_code)
    if updated.status == "completed":
        try:
            updated = await fulfil_order(updated)
        except Exception:
            # Payment stands; reconcile_orders retries orders without fulfilled_at
            log.exception("order_fulfil_failed")
    return FinalizeResult(order=updated, payment_status=status.payment_status, applied=True)


def _site_url(path: str, **params: str) -> str:
    base = get_settings().site_url.rstrip("/")
    query = urlencode({k: v for k, v in params.items() if v})
    return f"{base}{path}?{query}" if query else f"{base}{path}"


def failure_url(**params: str) -> str:
    return _site_url("/payment/failed", **params)


def success_url(reference: str) -> str:
    return _site_url("/payment/success", ref=reference)


async def handle_redirect_callback(
    gateway: PesapalClient,
    tracking_id: str | None,
    reference: str | None,
) -> str:
    """Return where to send the browser. Never a success page without a verified COMPLETED order."""
    if not tracking_id or not reference:
        log.warning("callback_missing_params", tracking_id=tracking_id, reference=reference)
        return failure_url(reason="missing_params")
    bind_payment_context(reference=reference, tracking_id=tracking_id)
    try:
        result = await finalize_order(gateway, reference=reference, tracking_id=tracking_id)
    except NotFoundError:
        log.warning("callback_unknown_order")
        return failure_url(reason="order_not_found")
    except (GatewayError, CredentialsError, VerificationError) as e:
        log.warning("callback_verification_failed", code=e.code, message=e.message)
        return failure_url(reason="verification_failed", ref=reference)
    except Exception:
        log.exception("callback_error")
        return failure_url(reason="server_error", ref=reference)

    order = result.order
    if order.status == "completed":
        return success_url(order.reference)
    status = order.payment_status or ("FAILED" if order.status == "failed" else "PENDING")
    return failure_url(status=status, ref=order.reference)


async def _mark_ipn_received(tracking_id: str | None, reference: str | None) -> PaymentOrder:
    order = await find_order(reference, tracking_id)
    if tracking_id and order.provider_tracking_id and tracking_id != order.provider_tracking_id:
        raise VerificationError("IPN tracking id does not belong to this order")
    now = datetime.utcnow()
    await PaymentOrder.find_one(PaymentOrder.reference == order.reference).update(
        Inc({PaymentOrder.ipn_count: 1}),
        Set({PaymentOrder.updated_at: now}),
    )
    marked = await PaymentOrder.find_one(
        PaymentOrder.reference == order.reference,
        PaymentOrder.status == "pending",
    ).update(
        Set({PaymentOrder.status: "ipn_received"}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    return marked or order


async def handle_ipn(
    gateway: PesapalClient,
    tracking_id: str | None,
    reference: str | None = None,
    notification_type: str | None = None,
) -> dict[str, Any]:
    """Record an IPN and re-verify with Pesapal. Always acknowledges; errors are logged only."""
    ack = {
        "orderNotificationType": notification_type or "IPNCHANGE",
        "orderTrackingId": tracking_id,
        "orderMerchantReference": reference,
        "status": 200,
    }
    bind_payment_context(reference=reference, tracking_id=tracking_id)
    log.info("ipn_received", notification_type=ack["orderNotificationType"])
    if not tracking_id:
        log.warning("ipn_missing_tracking_id")
        ack["status"] = 500
        return ack
    try:
        order = await _mark_ipn_received(tracking_id, reference)
        ack["orderMerchantReference"] = order.reference
        if get_settings().ipn_triggers_finalize:
            await finalize_order(gateway, reference=order.reference, tracking_id=tracking_id)
    except Exception as e:
        log.exception("ipn_processing_failed", error=str(e))
        ack["status"] = 500
    return ack


async def reconcile_orders(
    gateway: PesapalClient,
    older_than_seconds: int | None = None,
    limit: int | None = None,
) -> dict[str, int]:
    """Settle orders whose callbacks never arrived and retry unfinished fulfilment."""
    settings = get_settings()
    older_than_seconds = settings.reconcile_after_seconds if older_than_seconds is None else older_than_seconds
    limit = limit or settings.reconcile_batch_size
    cutoff = datetime.utcnow() - timedelta(seconds=older_than_seconds)
    counts = {"checked": 0, "completed": 0, "failed": 0, "abandoned": 0, "errors": 0, "fulfilled": 0}

    stale = await PaymentOrder.find(
        In(PaymentOrder.status, list(OPEN_STATUSES)),
        PaymentOrder.created_at <= cutoff,
    ).sort(+PaymentOrder.created_at).limit(limit).to_list()

    for order in stale:
        counts["checked"] += 1
        if not order.provider_tracking_id:
            updated = await _transition(order, "failed", {PaymentOrder.failure_reason: "abandoned"})
            if updated:
                counts["abandoned"] += 1
            continue
        try:
            result = await finalize_order(gateway, reference=order.reference)
        except Exception as e:
            counts["errors"] += 1
            log.warning("reconcile_order_failed", reference=order.reference, error=str(e))
            continue
        if result.applied:
            counts[result.order.status] += 1

    unfulfilled = await PaymentOrder.find(*_claimable(datetime.utcnow())).limit(limit).to_list()
    for order in unfulfilled:
        try:
            done = await fulfil_order(order)
            if done.fulfilled_at:
                counts["fulfilled"] += 1
        except Exception as e:
            counts["errors"] += 1
            log.warning("reconcile_fulfil_failed", reference=order.reference, error=str(e))

    log.info("reconcile_done", **counts)
    return counts
