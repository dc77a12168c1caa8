from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "https://www.nguvuhire.com"]

PESAPAL_URLS = {
    "sandbox": "https://cybqa.pesapal.com/pesapalv3/api",
    "live": "https://pay.pesapal.com/v3/api",
}


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except Exception:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")
    site_url: str = Field(default="https://www.nguvuhire.com", alias="SITE_URL")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="nguvuhire", alias="MONGODB_DB_NAME")

    # Redis (arq worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Pesapal
    pesapal_environment: str = Field(default="live", alias="PESAPAL_ENVIRONMENT")
    pesapal_api_url: str = Field(default="", alias="PESAPAL_API_URL")
    pesapal_consumer_key: str = Field(default="", alias="PESAPAL_CONSUMER_KEY")
    pesapal_consumer_secret: str = Field(default="", alias="PESAPAL_CONSUMER_SECRET")
    pesapal_callback_url: str = Field(default="", alias="PESAPAL_CALLBACK_URL")
    pesapal_ipn_id: str = Field(default="", alias="PESAPAL_IPN_ID")
    pesapal_timeout_seconds: float = Field(default=15.0, alias="PESAPAL_TIMEOUT_SECONDS")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,https://www.nguvuhire.com",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Pricing
    payment_currency: str = Field(default="USD", alias="PAYMENT_CURRENCY")
    verification_fee: float = Field(default=10.0, alias="VERIFICATION_FEE")
    boost_fee: float = Field(default=5.0, alias="BOOST_FEE")
    free_boost_credits: int = Field(default=1, alias="FREE_BOOST_CREDITS")

    # Payment workflow
    order_dedupe_ttl_seconds: int = Field(default=600, alias="ORDER_DEDUPE_TTL_SECONDS")
    ipn_triggers_finalize: bool = Field(default=True, alias="IPN_TRIGGERS_FINALIZE")
    reconcile_after_seconds: int = Field(default=15 * 60, alias="RECONCILE_AFTER_SECONDS")
    reconcile_batch_size: int = Field(default=100, alias="RECONCILE_BATCH_SIZE")

    @property
    def pesapal_base_url(self) -> str:
        """API root (ends in /api). Explicit PESAPAL_API_URL wins over the environment default."""
        if self.pesapal_api_url:
            return self.pesapal_api_url.rstrip("/")
        return PESAPAL_URLS.get(self.pesapal_environment.lower(), "")

    def missing_payment_settings(self) -> list[str]:
        required = {
            "PESAPAL_API_URL": self.pesapal_base_url,
            "PESAPAL_CONSUMER_KEY": self.pesapal_consumer_key,
            "PESAPAL_CONSUMER_SECRET": self.pesapal_consumer_secret,
            "PESAPAL_CALLBACK_URL": self.pesapal_callback_url,
            "PESAPAL_IPN_ID": self.pesapal_ipn_id,
        }
        return [name for name, value in required.items() if not value or not str(value).strip()]

    def price_for(self, kind: str) -> float:
        return self.verification_fee if kind == "verification" else self.boost_fee


@lru_cache
def get_settings() -> Settings:
    return Settings()


def check_payment_settings(settings: Settings | None = None) -> None:
    """Raise CredentialsError if any gateway setting is absent. Called at startup."""
    from nguvuhire.core.exceptions import CredentialsError

    settings = settings or get_settings()
    missing = settings.missing_payment_settings()
    if missing:
        raise CredentialsError(
            "Pesapal credentials are not configured",
            details={"missing": missing},
        )
