from typing import Literal

from fastapi import APIRouter, Depends, Query

from nguvuhire.deps import AuthContext, get_auth_context
from nguvuhire.models.credit_balance import CreditBalance
from nguvuhire.models.credit_ledger import CreditLedgerEntry
from nguvuhire.services import credits as credits_service

router = APIRouter()


def _balance_out(balance: CreditBalance) -> dict:
    return {"credits_available": balance.credits_available, "credits_used": balance.credits_used}


def _entry_out(entry: CreditLedgerEntry) -> dict:
    return {
        "id": str(entry.id),
        "amount": entry.amount,
        "balance_after": entry.balance_after,
        "reason": entry.reason,
        "reference_type": entry.reference_type,
        "reference_id": entry.reference_id,
        "created_at": entry.created_at.isoformat(),
    }


@router.get("/balance")
async def boost_credit_balance(auth: AuthContext = Depends(get_auth_context)):
    """Boost credits for the caller. First call creates the free allotment."""
    return _balance_out(await credits_service.get_balance(auth.user_id))


@router.get("/ledger")
async def boost_credit_history(
    auth: AuthContext = Depends(get_auth_context),
    reason: Literal["free_allotment", "purchase", "boost", "boost_refund"] | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    entries = await credits_service.list_ledger(auth.user_id, limit=limit, offset=offset, reason=reason)
    return {"entries": [_entry_out(e) for e in entries], "limit": limit, "offset": offset}
