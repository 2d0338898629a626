from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from rewards_ledger.deps import get_current_identity
from rewards_ledger.services import bonuses as bonuses_service
from rewards_ledger.services import check_in as check_in_service
from rewards_ledger.services import fingerprints as fingerprints_service
from rewards_ledger.services import offers as offers_service
from rewards_ledger.services import quests as quests_service
from rewards_ledger.services import referrals as referrals_service
from rewards_ledger.services import users as users_service
from rewards_ledger.services.users import Identity

router = APIRouter()


class ProfileRequest(BaseModel):
    referred_by: str | None = None
    device_id: str | None = None


class ApplyReferralRequest(BaseModel):
    code: str


class FingerprintRequest(BaseModel):
    device_id: str | None = None
    user_agent: str | None = None
    ip: str | None = None


class QuestClaimRequest(BaseModel):
    quest_id: str


class StartOfferRequest(BaseModel):
    offer_id: str
    title: str | None = None
    source: str | None = None
    type: str | None = None


def _profile(user) -> dict:
    return {
        "uid": user.uid,
        "email": user.email,
        "email_verified": user.email_verified,
        "balance": user.balance,
        "bonus_percent": user.bonus_percent,
        "daily_streak": user.daily_streak,
        "last_check_in": user.last_check_in.isoformat() if user.last_check_in else None,
        "referral_code": user.referral_code,
        "referred_by": user.referred_by,
        "referral_status": user.referral_status,
        "shortcut_bonus_claimed": user.shortcut_bonus_claimed,
    }


@router.post("/profile")
async def ensure_profile(body: ProfileRequest, identity: Identity = Depends(get_current_identity)):
    """Create the account on first sign-in; keeps email verification in sync."""
    user = await users_service.ensure_profile(identity, referred_by=body.referred_by, device_id=body.device_id)
    return _profile(user)


@router.get("/me")
async def me(identity: Identity = Depends(get_current_identity)):
    user = await users_service.get_user(identity.uid)
    return _profile(user)


@router.post("/check-in")
async def daily_check_in(identity: Identity = Depends(get_current_identity)):
    result = await check_in_service.daily_check_in(identity.uid)
    return {
        "updated": result.updated,
        "reset": result.reset,
        "daily_streak": result.daily_streak,
        "bonus_percent": result.bonus_percent,
        "last_check_in": result.last_check_in.isoformat() if result.last_check_in else None,
    }


@router.post("/referrals/process")
async def process_referral(identity: Identity = Depends(get_current_identity)):
    """Resolve the caller's pending referral once their email is verified."""
    outcome = await referrals_service.process_referral(identity.uid, identity.email_verified)
    return {"status": outcome.value, "message": referrals_service.MESSAGES[outcome]}


@router.post("/referrals/apply")
async def apply_referral_code(body: ApplyReferralRequest, identity: Identity = Depends(get_current_identity)):
    return await users_service.apply_referral_code(identity.uid, body.code)


@router.get("/referrals")
async def referral_summary(identity: Identity = Depends(get_current_identity)):
    return await referrals_service.referral_summary(identity.uid)


@router.post("/fingerprint")
async def log_fingerprint(
    body: FingerprintRequest,
    request: Request,
    identity: Identity = Depends(get_current_identity),
):
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    ip = body.ip or forwarded or (request.client.host if request.client else None)
    result = await fingerprints_service.log_fingerprint(identity.uid, body.device_id, body.user_agent, ip)
    return {
        "device_user_count": result.device_user_count,
        "ip_user_count": result.ip_user_count,
        "ip_hash": result.ip_hash,
    }


@router.post("/shortcut-bonus")
async def claim_shortcut_bonus(identity: Identity = Depends(get_current_identity)):
    user = await bonuses_service.claim_shortcut_bonus(identity.uid)
    return {"status": "claimed", "balance": user.balance}


@router.post("/quests/claim")
async def claim_quest_reward(body: QuestClaimRequest, identity: Identity = Depends(get_current_identity)):
    """Claimable once per quest window; a repeat claim pays nothing."""
    result = await quests_service.claim_quest_reward(identity.uid, body.quest_id)
    return {
        "quest_id": result.quest_id,
        "cash": result.cash,
        "already_claimed": result.already_claimed,
        "balance": result.balance,
    }


@router.post("/offers/started")
async def start_offer(body: StartOfferRequest, identity: Identity = Depends(get_current_identity)):
    started = await offers_service.start_offer(identity.uid, body.offer_id, body.title, body.source, body.type)
    return {"offer_id": started.offer_id, "status": started.status}


@router.get("/offers/started")
async def list_started_offers(identity: Identity = Depends(get_current_identity)):
    items = await offers_service.list_started_offers(identity.uid)
    return {
        "items": [
            {
                "offer_id": s.offer_id,
                "title": s.title,
                "status": s.status,
                "source": s.source,
                "type": s.type,
                "total_payout": s.total_payout,
                "last_updated_at": s.last_updated_at.isoformat(),
            }
            for s in items
        ]
    }


@router.get("/offers")
async def offer_history(
    identity: Identity = Depends(get_current_identity),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Offer history, newest first."""
    items, total = await offers_service.list_offer_history(identity.uid, limit=limit, offset=offset)
    out = [
        {
            "partner": e.partner,
            "kind": e.kind,
            "offer_id": e.offer_id,
            "tx_id": e.external_tx_id,
            "amount": e.amount,
            "gross": e.gross,
            "bonus_percent": e.bonus_percent,
            "created_at": e.created_at.isoformat(),
        }
        for e in items
    ]
    return {"items": out, "total": total, "limit": limit, "offset": offset}


@router.get("/audit")
async def audit_log(
    identity: Identity = Depends(get_current_identity),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Balance changes on the account, newest first."""
    user = await users_service.get_user(identity.uid)
    entries = list(reversed(user.audit_log))[offset : offset + limit]
    return {
        "entries": [e.model_dump(mode="json") for e in entries],
        "total": len(user.audit_log),
        "limit": limit,
        "offset": offset,
    }
