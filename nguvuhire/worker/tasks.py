"""arq job definitions."""

import uuid
from typing import Any, Awaitable
from urllib.parse import urlparse

from arq.connections import RedisSettings

from nguvuhire.core.config import get_settings
from nguvuhire.core.logging import bind_request_id, configure_logging, get_logger
from nguvuhire.db.init import init_db
from nguvuhire.models.failed_job import FailedJob

log = get_logger(__name__)


async def _run_with_dlq(job_name: str, ctx: dict[str, Any], coro: Awaitable[Any]) -> Any:
    """Await a cron body; on exception persist a FailedJob then re-raise so arq sees the failure."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else str(uuid.uuid4())
    bind_request_id(f"job:{job_id}")
    try:
        return await coro
    except Exception as e:
        await FailedJob(
            job_name=job_name,
            job_id=job_id,
            job_try=ctx.get("job_try") or 1,
            error_type=type(e).__name__,
            reason=str(e)[:2000],
        ).insert()
        log.exception("job_failed", job=job_name, job_id=job_id)
        raise


async def reconcile_payments(ctx: dict[str, Any]) -> dict[str, int]:
    """Cron job: finalize stale pending orders against Pesapal."""
    from nguvuhire.worker.cron import run_reconcile_payments
    return await _run_with_dlq("reconcile_payments", ctx, run_reconcile_payments())


async def expire_boosts(ctx: dict[str, Any]) -> int:
    """Cron job: deactivate boosts whose boost_end has passed."""
    from nguvuhire.worker.cron import run_expire_boosts
    return await _run_with_dlq("expire_boosts", ctx, run_expire_boosts())


async def startup(ctx: dict) -> None:
    configure_logging(debug=get_settings().debug)
    await init_db()
    log.info("worker_startup")


async def shutdown(ctx: dict) -> None:
    log.info("worker_shutdown")


def get_redis_settings() -> RedisSettings:
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )
