from fastapi import APIRouter, Depends

from nguvuhire.deps import AuthContext, get_optional_auth_context
from nguvuhire.services import subscriptions as subscriptions_service

router = APIRouter()


@router.get("/plans")
async def subscription_plans():
    """Active plans, cheapest first."""
    plans = await subscriptions_service.list_plans()
    return {
        "plans": [
            {
                "id": str(p.id),
                "name": p.name,
                "price_monthly": p.price_monthly,
                "boost_credits_per_month": p.boost_credits_per_month,
                "features": p.features,
            }
            for p in plans
        ]
    }


@router.get("/status")
async def subscription_status(auth: AuthContext | None = Depends(get_optional_auth_context)):
    """Current subscription and boost credits (empty view when logged out)."""
    return await subscriptions_service.get_status(auth.user_id if auth else None)
