"""Audit trail for payment outcomes, boosts and verifications."""

from typing import Any

import structlog

from nguvuhire.models.audit_log import AuditLog


def _current_request_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("request_id")


async def record(
    event_type: str,
    subject_type: str,
    subject_id: str,
    actor_user_id: str | None = None,
    order_reference: str | None = None,
    **details: Any,
) -> AuditLog:
    entry = AuditLog(
        event_type=event_type,
        actor_user_id=actor_user_id,
        subject_type=subject_type,
        subject_id=subject_id,
        order_reference=order_reference,
        request_id=_current_request_id(),
        details=details,
    )
    await entry.insert()
    return entry


async def record_order_outcome(order, confirmation_code: str | None = None) -> AuditLog:
    """payment_completed / payment_failed for an order that just left an open status."""
    return await record(
        "payment_completed" if order.status == "completed" else "payment_failed",
        "payment_order",
        order.reference,
        actor_user_id=order.user_id,
        order_reference=order.reference,
        kind=order.kind,
        amount=order.amount,
        currency=order.currency,
        payment_status=order.payment_status,
        confirmation_code=confirmation_code,
    )
