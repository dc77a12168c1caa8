"""Read model for plans and a user's current subscription + boost credits."""

from beanie import PydanticObjectId

from nguvuhire.models.subscription import SubscriptionPlan, UserSubscription
from nguvuhire.services import credits as credits_service


async def list_plans() -> list[SubscriptionPlan]:
    return await SubscriptionPlan.find(SubscriptionPlan.is_active == True).sort(  # noqa: E712
        +SubscriptionPlan.price_monthly
    ).to_list()


def _credits_out(balance) -> dict:
    return {
        "credits_available": balance.credits_available,
        "credits_used": balance.credits_used,
        "updated_at": balance.updated_at.isoformat(),
    }


async def get_status(user_id: str | None) -> dict:
    """Active subscription (with its plan) and boost credits. Anonymous callers get an empty view."""
    if not user_id:
        return {"subscription": None, "credits": {"credits_available": 0, "credits_used": 0}}
    subscription = await UserSubscription.find_one(
        UserSubscription.user_id == user_id,
        UserSubscription.status == "active",
    )
    sub_out = None
    if subscription:
        plan = None
        if PydanticObjectId.is_valid(subscription.plan_id):
            plan = await SubscriptionPlan.get(PydanticObjectId(subscription.plan_id))
        sub_out = {
            "id": str(subscription.id),
            "status": subscription.status,
            "current_period_end": subscription.current_period_end.isoformat() if subscription.current_period_end else None,
            "plan": {
                "id": str(plan.id),
                "name": plan.name,
                "price_monthly": plan.price_monthly,
                "boost_credits_per_month": plan.boost_credits_per_month,
            } if plan else None,
        }
    balance = await credits_service.get_balance(user_id)
    return {"subscription": sub_out, "credits": _credits_out(balance)}
