"""Bounded-retry unit of work for per-user ledger mutations."""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from pymongo.errors import ConnectionFailure, OperationFailure, PyMongoError

from rewards_ledger.core.config import get_settings
from rewards_ledger.core.exceptions import TransientError
from rewards_ledger.core.logging import get_logger
from rewards_ledger.db.init import get_client

log = get_logger(__name__)

T = TypeVar("T")

WRITE_CONFLICT = 112


class OptimisticConflict(Exception):
    """A conditional write matched nothing because the document changed after it was read."""


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, OptimisticConflict):
        return True
    if not isinstance(exc, PyMongoError):
        return False
    if exc.has_error_label("TransientTransactionError") or exc.has_error_label("UnknownTransactionCommitResult"):
        return True
    if isinstance(exc, ConnectionFailure):
        return True
    return isinstance(exc, OperationFailure) and exc.code == WRITE_CONFLICT


async def run_transaction(
    work: Callable[[Any], Awaitable[T]],
    *,
    name: str,
    max_attempts: int | None = None,
) -> T:
    """
    Run work(session) and retry the whole read-compute-write cycle on conflict.

    With MONGODB_TRANSACTIONS on, work runs inside a multi-document transaction
    and session is a Motor client session; otherwise session is None and work
    relies on single-document atomic updates plus unique indexes.
    Non-retryable errors (including DuplicateKeyError) propagate unchanged.
    After max_attempts retryable failures, raises TransientError.
    """
    settings = get_settings()
    attempts = max_attempts or settings.ledger_max_attempts
    for attempt in range(1, attempts + 1):
        try:
            if not settings.mongodb_transactions:
                return await work(None)
            async with await get_client().start_session() as session:
                async with session.start_transaction():
                    return await work(session)
        except Exception as exc:
            if not is_retryable(exc):
                raise
            if attempt == attempts:
                log.error("transaction_exhausted", name=name, attempts=attempts, error=type(exc).__name__)
                raise TransientError() from exc
            log.warning("transaction_retry", name=name, attempt=attempt, error=type(exc).__name__)
            await asyncio.sleep(settings.ledger_retry_backoff_ms * attempt / 1000)
    raise TransientError()
