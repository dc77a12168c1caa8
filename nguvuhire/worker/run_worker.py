"""Run arq worker. Usage: python -m nguvuhire.worker.run_worker"""

from arq import run_worker
from arq.cron import cron

from nguvuhire.worker.tasks import expire_boosts, get_redis_settings, reconcile_payments, shutdown, startup


class WorkerSettings:
    redis_settings = get_redis_settings()
    functions = [reconcile_payments, expire_boosts]
    cron_jobs = [
        cron(reconcile_payments, minute=set(range(0, 60, 10)), second=0),  # every 10 minutes
        cron(expire_boosts, minute=5, second=0),  # hourly
    ]
    on_startup = startup
    on_shutdown = shutdown


def main():
    # arq owns the event loop
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
