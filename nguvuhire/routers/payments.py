from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from nguvuhire.core.exceptions import ForbiddenError, NotFoundError
from nguvuhire.deps import AuthContext, get_auth_context, get_gateway
from nguvuhire.models.payment_order import PaymentOrder
from nguvuhire.services import callbacks as callbacks_service
from nguvuhire.services import orders as orders_service
from nguvuhire.services.pesapal import PesapalClient

router = APIRouter()


class CreatePaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    amount: float
    user_id: str | None = Field(default=None, alias="userId")
    post_id: str | None = Field(default=None, alias="postId")
    post_type: str = Field(default="job", alias="postType")
    boost_type: str = Field(default="standard", alias="boostType")


def _order_out(order: PaymentOrder) -> dict:
    return {
        "reference": order.reference,
        "kind": order.kind,
        "amount": order.amount,
        "currency": order.currency,
        "status": order.status,
        "payment_status": order.payment_status,
        "post_id": order.target_post_id,
        "created_at": order.created_at.isoformat(),
        "updated_at": order.updated_at.isoformat(),
    }


@router.post("/create")
async def create_payment(
    body: CreatePaymentRequest,
    auth: AuthContext = Depends(get_auth_context),
    gateway: PesapalClient = Depends(get_gateway),
):
    """Create a pending order and return the Pesapal checkout URL."""
    if body.user_id and body.user_id != auth.user_id:
        raise ForbiddenError("Cannot create payments for another user")
    session = await orders_service.create_order(
        gateway,
        kind=body.type,
        amount=body.amount,
        user_id=auth.user_id,
        post_id=body.post_id,
        post_type=body.post_type,
        boost_type=body.boost_type,
    )
    return {
        "success": True,
        "checkoutUrl": session.redirect_url,
        "reference": session.reference,
        "orderTrackingId": session.tracking_id,
    }


@router.get("/callback")
async def payment_callback(
    order_tracking_id: str | None = Query(None, alias="OrderTrackingId"),
    merchant_reference: str | None = Query(None, alias="OrderMerchantReference"),
    gateway: PesapalClient = Depends(get_gateway),
):
    """Browser redirect from Pesapal checkout. Verifies with Pesapal before showing success."""
    target = await callbacks_service.handle_redirect_callback(gateway, order_tracking_id, merchant_reference)
    return RedirectResponse(target, status_code=302)


@router.api_route("/ipn", methods=["GET", "POST"])
async def payment_ipn(request: Request, gateway: PesapalClient = Depends(get_gateway)):
    """Pesapal IPN. Always answers 200 so Pesapal does not retry-storm us."""
    params = dict(request.query_params)
    if request.method == "POST":
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
        if isinstance(payload, dict):
            params.update({k: v for k, v in payload.items() if v is not None})
    return await callbacks_service.handle_ipn(
        gateway,
        tracking_id=params.get("OrderTrackingId"),
        reference=params.get("OrderMerchantReference"),
        notification_type=params.get("OrderNotificationType"),
    )


@router.get("/status")
async def payment_status(ref: str = Query(...), auth: AuthContext = Depends(get_auth_context)):
    """Order status for the payment status page (owner only)."""
    order = await PaymentOrder.find_one(PaymentOrder.reference == ref)
    if not order:
        raise NotFoundError("Payment order not found")
    if order.user_id != auth.user_id and not auth.is_admin:
        raise ForbiddenError("Not your order")
    return _order_out(order)


@router.get("/orders")
async def list_orders(
    auth: AuthContext = Depends(get_auth_context),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Current user's payment orders, newest first."""
    orders = (
        await PaymentOrder.find(PaymentOrder.user_id == auth.user_id)
        .sort(-PaymentOrder.created_at)
        .skip(offset)
        .limit(limit)
        .to_list()
    )
    return {"orders": [_order_out(o) for o in orders], "limit": limit, "offset": offset}
