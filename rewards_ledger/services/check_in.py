"""Daily check-in: streak and bonus percent, one increment per window."""

from dataclasses import dataclass
from datetime import datetime

from rewards_ledger.core.config import Settings, get_settings
from rewards_ledger.core.exceptions import NotFoundError
from rewards_ledger.core.logging import get_logger
from rewards_ledger.db.transactions import OptimisticConflict, run_transaction
from rewards_ledger.models.user import AuditEntry, User
from rewards_ledger.services.ledger import apply_balance_change

log = get_logger(__name__)


@dataclass(frozen=True)
class CheckInResult:
    updated: bool
    reset: bool
    daily_streak: int
    bonus_percent: float
    last_check_in: datetime | None


def next_check_in(
    streak: int,
    bonus_percent: float,
    last_check_in: datetime | None,
    now: datetime,
    settings: Settings | None = None,
) -> CheckInResult:
    """
    Under check_in_min_hours since the last check-in: nothing changes.
    Under check_in_reset_hours: streak + 1 and bonus + step (capped).
    Otherwise (or first ever): streak restarts at 1 with one step of bonus.
    """
    settings = settings or get_settings()
    step = settings.check_in_bonus_step
    cap = settings.bonus_percent_cap
    if last_check_in is not None:
        elapsed_hours = (now - last_check_in).total_seconds() / 3600
        if elapsed_hours < settings.check_in_min_hours:
            return CheckInResult(False, False, streak, bonus_percent, last_check_in)
        if elapsed_hours < settings.check_in_reset_hours:
            return CheckInResult(True, False, streak + 1, min(cap, bonus_percent + step), now)
    return CheckInResult(True, last_check_in is not None, 1, min(cap, step), now)


async def daily_check_in(uid: str, now: datetime | None = None) -> CheckInResult:
    async def work(session) -> CheckInResult:
        user = await User.find_one(User.uid == uid, session=session)
        if user is None:
            raise NotFoundError("User not found")
        result = next_check_in(user.daily_streak, user.bonus_percent, user.last_check_in, now or datetime.utcnow())
        if not result.updated:
            return result
        entry = AuditEntry(
            type="daily_check_in",
            amount=0.0,
            bonus_percent=result.bonus_percent,
            metadata={"streak": result.daily_streak, "reset": result.reset},
        )
        # Conditional on the last_check_in we read: two concurrent calls cannot both advance.
        updated = await apply_balance_change(
            uid,
            0.0,
            entry,
            session=session,
            set_fields={
                "daily_streak": result.daily_streak,
                "bonus_percent": result.bonus_percent,
                "last_check_in": result.last_check_in,
            },
            expect={"last_check_in": user.last_check_in},
        )
        if updated is None:
            raise OptimisticConflict("check-in raced")
        return result

    result = await run_transaction(work, name="daily_check_in")
    log.info(
        "daily_check_in",
        uid=uid,
        updated=result.updated,
        reset=result.reset,
        streak=result.daily_streak,
        bonus_percent=result.bonus_percent,
    )
    return result
