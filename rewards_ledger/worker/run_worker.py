"""Run ARQ worker. Usage: python -m rewards_ledger.worker.run_worker (or: arq rewards_ledger.worker.run_worker.WorkerSettings)"""

from arq import run_worker
from arq.cron import cron
from rewards_ledger.worker.tasks import get_redis_settings, shutdown, startup, sweep_started_offers


class WorkerSettings:
    redis_settings = get_redis_settings()
    cron_jobs = [
        cron(sweep_started_offers, minute=0, second=0),  # hourly
    ]
    on_startup = startup
    on_shutdown = shutdown


def main():
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
