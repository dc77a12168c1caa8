"""Cron bodies: settle stale Pesapal orders and end expired boosts."""

from nguvuhire.core.config import get_settings
from nguvuhire.core.logging import get_logger
from nguvuhire.services import boosts as boosts_service
from nguvuhire.services import callbacks as callbacks_service
from nguvuhire.services.pesapal import PesapalClient

log = get_logger(__name__)


async def run_reconcile_payments(gateway: PesapalClient | None = None) -> dict[str, int]:
    """Re-query Pesapal for orders whose redirect/IPN never finalized them."""
    settings = get_settings()
    gateway = gateway or PesapalClient.from_settings(settings)
    return await callbacks_service.reconcile_orders(
        gateway,
        older_than_seconds=settings.reconcile_after_seconds,
        limit=settings.reconcile_batch_size,
    )


async def run_expire_boosts() -> int:
    ended = await boosts_service.expire_boosts()
    log.info("expire_boosts_done", ended=ended)
    return ended
