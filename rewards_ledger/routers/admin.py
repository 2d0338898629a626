from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from rewards_ledger.core.exceptions import BadRequestError, NotFoundError
from rewards_ledger.deps import require_admin
from rewards_ledger.models.completed_offer import CompletedOffer
from rewards_ledger.models.fraud_log import FraudLog
from rewards_ledger.models.user import User
from rewards_ledger.services import ledger as ledger_service
from rewards_ledger.services.users import Identity

router = APIRouter()


class AdjustRequest(BaseModel):
    amount: float
    note: str = Field(min_length=1)


@router.get("/users/{uid}/ledger")
async def admin_user_ledger(
    uid: str,
    identity: Identity = Depends(require_admin),
    limit: int = Query(50, ge=1, le=200),
):
    """Admin: balance, audit log and completed offers of one account."""
    user = await User.find_one(User.uid == uid)
    if not user:
        raise NotFoundError("User not found")
    records = (
        await CompletedOffer.find(CompletedOffer.user_uid == uid)
        .sort(-CompletedOffer.created_at)
        .limit(limit)
        .to_list()
    )
    return {
        "uid": user.uid,
        "balance": user.balance,
        "bonus_percent": user.bonus_percent,
        "audit_log": [e.model_dump(mode="json") for e in reversed(user.audit_log[-limit:])],
        "completed_offers": [
            r.model_dump(mode="json", exclude={"id", "revision_id"}) for r in records
        ],
    }


@router.get("/fraud-logs")
async def admin_fraud_logs(
    identity: Identity = Depends(require_admin),
    type: str | None = Query(None),
    uid: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Admin: velocity and fingerprint entries, newest first."""
    filters = []
    if type:
        filters.append(FraudLog.type == type)
    if uid:
        filters.append(FraudLog.user_uid == uid)
    entries = await FraudLog.find(*filters).sort(-FraudLog.created_at).skip(offset).limit(limit).to_list()
    return {
        "items": [e.model_dump(mode="json", exclude={"id", "revision_id"}) for e in entries],
        "limit": limit,
        "offset": offset,
    }


@router.post("/users/{uid}/adjust")
async def admin_adjust_balance(uid: str, body: AdjustRequest, identity: Identity = Depends(require_admin)):
    """Admin: manual balance change (cashouts, corrections)."""
    if body.amount == 0:
        raise BadRequestError("Amount must be non-zero")
    user = await ledger_service.adjust_balance(uid, body.amount, body.note, identity.uid)
    return {"uid": user.uid, "balance": user.balance}
