"""Pesapal v3 client: token exchange, order submission, transaction status, IPN setup.

Every public call authenticates first and reuses the token only for that call.
get_status is the only trusted answer to "did money move"; callers must not
finalize an order from callback or IPN parameters alone.
"""

from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from nguvuhire.core.config import Settings, get_settings
from nguvuhire.core.exceptions import CredentialsError, GatewayError
from nguvuhire.core.logging import get_logger

log = get_logger(__name__)

PaymentStatus = Literal["COMPLETED", "FAILED", "INVALID", "PENDING"]

# Pesapal status_code: 0 INVALID, 1 COMPLETED, 2 FAILED, 3 REVERSED
STATUS_CODES: dict[int, PaymentStatus] = {0: "INVALID", 1: "COMPLETED", 2: "FAILED", 3: "FAILED"}
STATUS_DESCRIPTIONS: dict[str, PaymentStatus] = {
    "COMPLETED": "COMPLETED",
    "FAILED": "FAILED",
    "INVALID": "INVALID",
    "REVERSED": "FAILED",
    "PENDING": "PENDING",
}


class Token(BaseModel):
    token: str
    expiry_date: str | None = None


class BillingAddress(BaseModel):
    email_address: str = ""
    phone_number: str = ""
    country_code: str = "KE"
    first_name: str = "Nguvu"
    last_name: str = "Hire"
    line_1: str = ""
    city: str = ""
    postal_code: str = ""


class OrderRequest(BaseModel):
    id: str  # merchant reference
    currency: str
    amount: float
    description: str = Field(max_length=100)
    callback_url: str
    notification_id: str
    billing_address: BillingAddress


class SubmitOrderResult(BaseModel):
    tracking_id: str
    merchant_reference: str | None = None
    redirect_url: str
    status: str | None = None


class TransactionStatus(BaseModel):
    payment_status: PaymentStatus
    status_code: int | None = None
    description: str | None = None
    merchant_reference: str | None = None
    confirmation_code: str | None = None
    amount: float | None = None
    currency: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


def parse_payment_status(data: dict[str, Any]) -> PaymentStatus:
    code = data.get("status_code")
    try:
        if code is not None and int(code) in STATUS_CODES:
            return STATUS_CODES[int(code)]
    except (TypeError, ValueError):
        pass
    description = str(data.get("payment_status_description") or "").strip().upper()
    return STATUS_DESCRIPTIONS.get(description, "PENDING")


def _provider_error(body: Any) -> str | None:
    """Pesapal reports some failures as 200 with an "error" object."""
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        # Successful responses carry {"error_type": null, "code": null, "message": null}
        if not any(error.values()):
            return None
        return error.get("message") or error.get("code") or str(error)
    return str(error)


class PesapalClient:
    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "PesapalClient":
        settings = settings or get_settings()
        return cls(
            base_url=settings.pesapal_base_url,
            consumer_key=settings.pesapal_consumer_key,
            consumer_secret=settings.pesapal_consumer_secret,
            timeout=settings.pesapal_timeout_seconds,
            transport=transport,
        )

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )

    async def _request(
        self,
        http: httpx.AsyncClient,
        method: str,
        path: str,
        token: str | None = None,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            resp = await http.request(method, path, json=json, params=params, headers=headers)
        except httpx.HTTPError as e:
            log.warning("pesapal_unreachable", method=method, path=path, error=str(e))
            raise GatewayError("Cannot connect to Pesapal", provider_error=str(e)) from e
        log.info("pesapal_request", method=method, path=path, status_code=resp.status_code)
        if resp.status_code >= 400:
            raise GatewayError(
                f"Pesapal API error ({resp.status_code})",
                provider_error=resp.text[:2000],
                upstream_status=resp.status_code,
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise GatewayError("Invalid response from Pesapal", provider_error=resp.text[:2000]) from e
        error = _provider_error(body)
        if error:
            raise GatewayError(f"Pesapal rejected {path}", provider_error=error, upstream_status=resp.status_code)
        return body

    async def _authenticate(self, http: httpx.AsyncClient) -> Token:
        if not self.base_url:
            raise CredentialsError("Pesapal API URL is not configured")
        if not self.consumer_key or not self.consumer_secret:
            raise CredentialsError("Pesapal consumer key/secret are not configured")
        payload = {"consumer_key": self.consumer_key, "consumer_secret": self.consumer_secret}
        try:
            body = await self._request(http, "POST", "/Auth/RequestToken", json=payload)
        except GatewayError as e:
            rejected = (e.upstream_status in (400, 401, 403)) or "consumer" in (e.provider_error or "").lower()
            if rejected:
                raise CredentialsError("Pesapal rejected the consumer key/secret") from e
            raise
        if not isinstance(body, dict) or not body.get("token"):
            raise CredentialsError("Access token not received from Pesapal")
        return Token(token=body["token"], expiry_date=body.get("expiryDate"))

    async def authenticate(self) -> Token:
        async with self._http() as http:
            return await self._authenticate(http)

    async def submit_order(self, order: OrderRequest) -> SubmitOrderResult:
        async with self._http() as http:
            token = await self._authenticate(http)
            body = await self._request(
                http,
                "POST",
                "/Transactions/SubmitOrderRequest",
                token=token.token,
                json=order.model_dump(),
            )
        if not body.get("order_tracking_id") or not body.get("redirect_url"):
            raise GatewayError("Pesapal returned no checkout URL", provider_error=str(body)[:2000])
        log.info("pesapal_order_submitted", reference=order.id, tracking_id=body["order_tracking_id"])
        return SubmitOrderResult(
            tracking_id=body["order_tracking_id"],
            merchant_reference=body.get("merchant_reference"),
            redirect_url=body["redirect_url"],
            status=str(body["status"]) if body.get("status") is not None else None,
        )

    async def get_status(self, tracking_id: str) -> TransactionStatus:
        async with self._http() as http:
            token = await self._authenticate(http)
            body = await self._request(
                http,
                "GET",
                "/Transactions/GetTransactionStatus",
                token=token.token,
                params={"orderTrackingId": tracking_id},
            )
        status = TransactionStatus(
            payment_status=parse_payment_status(body),
            status_code=body.get("status_code"),
            description=body.get("payment_status_description"),
            merchant_reference=body.get("merchant_reference"),
            confirmation_code=body.get("confirmation_code"),
            amount=body.get("amount"),
            currency=body.get("currency"),
            raw=body,
        )
        log.info("pesapal_status", tracking_id=tracking_id, payment_status=status.payment_status)
        return status

    async def register_ipn(self, url: str, notification_type: str = "GET") -> dict[str, Any]:
        async with self._http() as http:
            token = await self._authenticate(http)
            return await self._request(
                http,
                "POST",
                "/URLSetup/RegisterIPN",
                token=token.token,
                json={"url": url, "ipn_notification_type": notification_type},
            )

    async def get_ipn_list(self) -> list[dict[str, Any]]:
        async with self._http() as http:
            token = await self._authenticate(http)
            body = await self._request(http, "GET", "/URLSetup/GetIpnList", token=token.token)
        return body if isinstance(body, list) else []
