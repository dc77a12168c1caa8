import pytest


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-ID"]


def test_missing_gateway_settings_fail_at_startup():
    from nguvuhire.core.config import Settings, check_payment_settings
    from nguvuhire.core.exceptions import CredentialsError

    settings = Settings(_env_file=None, PESAPAL_CONSUMER_SECRET="", PESAPAL_IPN_ID="")
    with pytest.raises(CredentialsError) as exc:
        check_payment_settings(settings)
    assert exc.value.details["missing"] == ["PESAPAL_CONSUMER_SECRET", "PESAPAL_IPN_ID"]


def test_configured_gateway_settings_pass():
    from nguvuhire.core.config import Settings, check_payment_settings

    check_payment_settings(Settings(_env_file=None))


def test_sandbox_environment_selects_sandbox_url():
    from nguvuhire.core.config import Settings

    settings = Settings(_env_file=None, PESAPAL_API_URL="", PESAPAL_ENVIRONMENT="sandbox")
    assert settings.pesapal_base_url == "https://cybqa.pesapal.com/pesapalv3/api"


def test_sentry_events_drop_pesapal_identifiers():
    from nguvuhire.main import _scrub_sentry_event

    event = {"request": {"query_string": "OrderTrackingId=trk-1&OrderMerchantReference=NGUVU-BOOST-1"}}
    assert _scrub_sentry_event(event, None)["request"]["query_string"] == "[Filtered]"
    untouched = {"request": {"query_string": "ref=NGUVU-BOOST-1"}}
    assert _scrub_sentry_event(untouched, None) == untouched
