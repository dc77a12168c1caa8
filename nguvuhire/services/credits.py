"""Boost-credit ledger: lazy free allotment and atomic balance updates.

Balances only move through conditional find_one_and_update calls so that
concurrent debits for the same user can never take credits_available below 0.
Every change appends a CreditLedgerEntry.
"""

from datetime import datetime

from beanie import UpdateResponse
from beanie.operators import Inc, Set
from pymongo.errors import DuplicateKeyError

from nguvuhire.core.config import get_settings
from nguvuhire.core.exceptions import BadRequestError, InsufficientCreditsError
from nguvuhire.core.logging import get_logger
from nguvuhire.models.credit_balance import CreditBalance
from nguvuhire.models.credit_ledger import CreditLedgerEntry

log = get_logger(__name__)


async def _record(
    balance: CreditBalance,
    amount: int,
    reason: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> CreditLedgerEntry:
    entry = CreditLedgerEntry(
        user_id=balance.user_id,
        amount=amount,
        balance_after=balance.credits_available,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    await entry.insert()
    return entry


async def get_balance(user_id: str) -> CreditBalance:
    """Return the user's balance, creating the free allotment on first access."""
    balance = await CreditBalance.find_one(CreditBalance.user_id == user_id)
    if balance:
        return balance
    free = get_settings().free_boost_credits
    balance = CreditBalance(user_id=user_id, credits_available=free, credits_used=0)
    try:
        await balance.insert()
    except DuplicateKeyError:
        # Lost the race to a concurrent first access
        return await CreditBalance.find_one(CreditBalance.user_id == user_id)
    log.info("credits_created", user_id=user_id, credits_available=free)
    if free:
        await _record(balance, free, "free_allotment")
    return balance


async def debit_one(
    user_id: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> CreditBalance:
    """Spend one credit. Raises InsufficientCreditsError when none are available."""
    await get_balance(user_id)
    updated = await CreditBalance.find_one(
        CreditBalance.user_id == user_id,
        CreditBalance.credits_available >= 1,
    ).update(
        Inc({CreditBalance.credits_available: -1, CreditBalance.credits_used: 1}),
        Set({CreditBalance.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        raise InsufficientCreditsError()
    await _record(updated, -1, "boost", reference_type, reference_id)
    log.info("credit_debited", user_id=user_id, credits_available=updated.credits_available)
    return updated


async def refund_one(
    user_id: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> CreditBalance:
    """Compensate a debit whose boost could not be persisted."""
    updated = await CreditBalance.find_one(
        CreditBalance.user_id == user_id,
        CreditBalance.credits_used >= 1,
    ).update(
        Inc({CreditBalance.credits_available: 1, CreditBalance.credits_used: -1}),
        Set({CreditBalance.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        raise BadRequestError("No debited credit to refund")
    await _record(updated, 1, "boost_refund", reference_type, reference_id)
    log.info("credit_refunded", user_id=user_id, credits_available=updated.credits_available)
    return updated


async def grant(
    user_id: str,
    amount: int,
    reason: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    idempotency_key: str | None = None,
) -> tuple[CreditBalance, bool]:
    """
    Add credits atomically.
    Returns (balance, applied). If idempotency_key was already used, nothing is added and applied is False.

    The ledger row is inserted before the balance moves; the unique (user_id, idempotency_key)
    index makes the insert the claim, so concurrent grants with one key apply once.
    """
    if amount <= 0:
        raise BadRequestError("Grant amount must be positive")
    balance = await get_balance(user_id)
    entry = CreditLedgerEntry(
        user_id=user_id,
        amount=amount,
        balance_after=balance.credits_available + amount,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    if idempotency_key:
        entry.idempotency_key = idempotency_key
    try:
        await entry.insert()
    except DuplicateKeyError:
        log.info("credits_grant_duplicate", user_id=user_id, idempotency_key=idempotency_key)
        return await get_balance(user_id), False
    updated = await CreditBalance.find_one(CreditBalance.user_id == user_id).update(
        Inc({CreditBalance.credits_available: amount}),
        Set({CreditBalance.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated.credits_available != entry.balance_after:
        await entry.set({CreditLedgerEntry.balance_after: updated.credits_available})
    log.info("credits_granted", user_id=user_id, amount=amount, reason=reason)
    return updated, True


async def list_ledger(
    user_id: str,
    limit: int = 50,
    offset: int = 0,
    reason: str | None = None,
) -> list[CreditLedgerEntry]:
    filters = [CreditLedgerEntry.user_id == user_id]
    if reason:
        filters.append(CreditLedgerEntry.reason == reason)
    return (
        await CreditLedgerEntry.find(*filters)
        .sort(-CreditLedgerEntry.created_at)
        .skip(offset)
        .limit(limit)
        .to_list()
    )
