"""ARQ job definitions."""

import uuid
from typing import Any

from arq.connections import RedisSettings

from rewards_ledger.core.config import get_settings
from rewards_ledger.core.logging import get_logger

log = get_logger(__name__)


async def _run_with_dlq(job_name: str, job_id: str | None, kwargs: dict[str, Any], coro, attempt: int = 1):
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    try:
        return await coro
    except Exception as e:
        from rewards_ledger.models.failed_job import FailedJob
        fid = job_id or str(uuid.uuid4())
        await FailedJob(
            job_name=job_name,
            job_id=fid,
            kwargs=kwargs,
            reason=str(e)[:2000],
            attempt=attempt,
        ).insert()
        log.exception("job_failed", job=job_name, job_id=fid, reason=str(e))
        raise


async def sweep_started_offers(ctx: dict[str, Any]) -> dict[str, int]:
    """Cron job: delete stale in-progress and expired completed started-offers."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None
    from rewards_ledger.worker.cron import run_retention_sweep
    return await _run_with_dlq(
        "sweep_started_offers", job_id, {}, run_retention_sweep(), attempt=ctx.get("job_try") or 1
    )


async def startup(ctx: dict) -> None:
    from rewards_ledger.core.logging import configure_logging
    from rewards_ledger.db.init import init_db
    configure_logging(debug=get_settings().debug)
    await init_db()


async def shutdown(ctx: dict) -> None:
    pass


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )
