from fastapi import APIRouter, Depends
from pydantic import BaseModel

from nguvuhire.deps import AuthContext, get_gateway, require_admin
from nguvuhire.services.pesapal import PesapalClient

router = APIRouter()


class RegisterIpnRequest(BaseModel):
    url: str
    notification_type: str = "GET"


@router.get("/ipn-list")
async def ipn_list(
    admin: AuthContext = Depends(require_admin),
    gateway: PesapalClient = Depends(get_gateway),
):
    """Admin: IPN URLs registered with Pesapal (to find PESAPAL_IPN_ID)."""
    return {"success": True, "ipns": await gateway.get_ipn_list()}


@router.post("/register-ipn")
async def register_ipn(
    body: RegisterIpnRequest,
    admin: AuthContext = Depends(require_admin),
    gateway: PesapalClient = Depends(get_gateway),
):
    """Admin: register our IPN URL with Pesapal."""
    result = await gateway.register_ipn(body.url, body.notification_type)
    return {"success": True, "ipn": result}
