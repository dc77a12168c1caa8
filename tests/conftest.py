import json
import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("SITE_URL", "https://www.nguvuhire.com")
os.environ.setdefault("PESAPAL_API_URL", "https://pesapal.test/api")
os.environ.setdefault("PESAPAL_CONSUMER_KEY", "test-consumer-key")
os.environ.setdefault("PESAPAL_CONSUMER_SECRET", "test-consumer-secret")
os.environ.setdefault("PESAPAL_CALLBACK_URL", "https://api.nguvuhire.test/api/payments/callback")
os.environ.setdefault("PESAPAL_IPN_ID", "ipn-test-id")
os.environ.setdefault("FREE_BOOST_CREDITS", "1")

TOKEN = "tok-test"
NO_ERROR = {"error_type": None, "code": None, "message": None}


class FakePesapal:
    """In-process Pesapal v3 API behind httpx.MockTransport."""

    def __init__(self):
        self.statuses: dict[str, tuple[int | None, str]] = {}
        self.references: dict[str, str] = {}
        self.calls: list[str] = []
        self.down = False
        self.reject_auth = False
        self.submit_error: str | None = None
        self.ipns: list[dict] = []

    def set_status(self, tracking_id: str, status_code: int | None, description: str) -> None:
        self.statuses[tracking_id] = (status_code, description)

    def complete(self, tracking_id: str) -> None:
        self.set_status(tracking_id, 1, "Completed")

    def fail(self, tracking_id: str) -> None:
        self.set_status(tracking_id, 2, "Failed")

    def count(self, endpoint: str) -> int:
        return sum(1 for path in self.calls if path.endswith(endpoint))

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if path.endswith("/Auth/RequestToken"):
            if self.reject_auth:
                return httpx.Response(401, text="invalid_consumer_key_or_secret_provided")
            return httpx.Response(200, json={"token": TOKEN, "expiryDate": "2030-01-01T00:00:00Z", "error": None, "status": "200"})
        if request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return httpx.Response(401, text="unauthorized")
        if path.endswith("/Transactions/SubmitOrderRequest"):
            if self.submit_error:
                return httpx.Response(500, text=self.submit_error)
            body = json.loads(request.content)
            tracking_id = f"trk-{len(self.references) + 1}"
            self.references[tracking_id] = body["id"]
            return httpx.Response(200, json={
                "order_tracking_id": tracking_id,
                "merchant_reference": body["id"],
                "redirect_url": f"https://pay.pesapal.test/iframe?OrderTrackingId={tracking_id}",
                "error": None,
                "status": "200",
            })
        if path.endswith("/Transactions/GetTransactionStatus"):
            tracking_id = request.url.params.get("orderTrackingId")
            status_code, description = self.statuses.get(tracking_id, (None, ""))
            return httpx.Response(200, json={
                "payment_method": "Visa",
                "amount": 10.0,
                "payment_status_description": description,
                "confirmation_code": "CONF-1" if status_code == 1 else "",
                "status_code": status_code,
                "merchant_reference": self.references.get(tracking_id),
                "currency": "USD",
                "error": NO_ERROR,
                "status": "200",
            })
        if path.endswith("/URLSetup/RegisterIPN"):
            body = json.loads(request.content)
            ipn = {"url": body["url"], "ipn_id": f"ipn-{len(self.ipns) + 1}", "ipn_notification_type": body["ipn_notification_type"]}
            self.ipns.append(ipn)
            return httpx.Response(200, json={**ipn, "error": None, "status": "200"})
        if path.endswith("/URLSetup/GetIpnList"):
            return httpx.Response(200, json=self.ipns)
        return httpx.Response(404, text="not found")


@pytest_asyncio.fixture(autouse=True)
async def db():
    from nguvuhire.db.init import init_db
    client = AsyncMongoMockClient()
    database = client["nguvuhire_test"]
    await init_db(database)
    yield database


@pytest.fixture
def pesapal() -> FakePesapal:
    return FakePesapal()


@pytest.fixture
def gateway(pesapal):
    from nguvuhire.services.pesapal import PesapalClient
    return PesapalClient.from_settings(transport=httpx.MockTransport(pesapal.handler))


@pytest_asyncio.fixture
async def client(gateway) -> AsyncGenerator[AsyncClient, None]:
    from nguvuhire.deps import get_gateway
    from nguvuhire.main import app
    app.dependency_overrides[get_gateway] = lambda: gateway
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user():
    from nguvuhire.models.user import User

    async def _make(email: str = "owner@example.com", name: str = "Amina Otieno", role: str = "employer") -> User:
        user = User(email=email, name=name, role=role)
        await user.insert()
        return user

    return _make


@pytest.fixture
def make_post():
    from nguvuhire.models.post import AvailabilityPost, JobPost

    async def _make(user, post_type: str = "job", title: str = "Warehouse supervisor"):
        model = JobPost if post_type == "job" else AvailabilityPost
        post = model(title=title, created_by=str(user.id))
        await post.insert()
        return post

    return _make


def auth_headers(user) -> dict[str, str]:
    from nguvuhire.core.security import create_session_cookie
    from nguvuhire.deps import SESSION_COOKIE_NAME
    cookie = create_session_cookie({"user_id": str(user.id), "session_version": user.session_version})
    return {"Cookie": f"{SESSION_COOKIE_NAME}={cookie}"}


@pytest.fixture
def datastore_latency(monkeypatch):
    """mongomock never yields to the event loop; give gathered coroutines a chance to interleave."""
    import asyncio

    from nguvuhire.services import credits as credits_service

    real_get_balance = credits_service.get_balance

    async def slow_get_balance(user_id):
        await asyncio.sleep(0)
        return await real_get_balance(user_id)

    monkeypatch.setattr(credits_service, "get_balance", slow_get_balance)

    def slow_down(gateway):
        real_get_status = gateway.get_status

        async def slow_get_status(tracking_id):
            await asyncio.sleep(0)
            return await real_get_status(tracking_id)

        monkeypatch.setattr(gateway, "get_status", slow_get_status)
        return gateway

    return slow_down
