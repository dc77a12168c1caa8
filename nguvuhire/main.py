import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from nguvuhire.core.config import check_payment_settings, get_settings
from nguvuhire.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from nguvuhire.core.logging import bind_request_id, configure_logging, get_logger
from nguvuhire.db.init import init_db
from nguvuhire.routers import boosts, credits, payments, pesapal, subscriptions

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

# Pesapal redirects and IPNs carry these in the query string
SENSITIVE_QUERY_KEYS = ("OrderTrackingId", "OrderMerchantReference")
QUIET_PATHS = ("/health",)

app = FastAPI(
    title="NguvuHire Payments API",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    if request.url.path not in QUIET_PATHS:
        log.info(
            "request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(boosts.router, prefix="/api/boosts", tags=["boosts"])
app.include_router(subscriptions.router, prefix="/api/subscriptions", tags=["subscriptions"])
app.include_router(credits.router, prefix="/api/credits", tags=["credits"])
app.include_router(pesapal.router, prefix="/api/pesapal", tags=["pesapal"])


def _scrub_sentry_event(event, hint):
    request = event.get("request") or {}
    query = request.get("query_string")
    if isinstance(query, str) and any(key in query for key in SENSITIVE_QUERY_KEYS):
        request["query_string"] = "[Filtered]"
    return event


@app.on_event("startup")
async def startup():
    # Missing gateway config is fatal here rather than at the first checkout
    check_payment_settings(settings)
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.env,
            traces_sample_rate=0.1,
            send_default_pii=False,
            before_send=_scrub_sentry_event,
        )
        log.info("startup", msg="Sentry enabled")
    await init_db()
    log.info("startup", msg="DB connected", pesapal_url=settings.pesapal_base_url, environment=settings.pesapal_environment)


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
