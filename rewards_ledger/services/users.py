import secrets
from dataclasses import dataclass
from datetime import datetime

from beanie import UpdateResponse
from beanie.operators import Set
from pymongo.errors import DuplicateKeyError

from rewards_ledger.core.exceptions import BadRequestError, NotFoundError
from rewards_ledger.core.logging import get_logger
from rewards_ledger.models.user import User

log = get_logger(__name__)

CODE_LENGTH = 6


@dataclass(frozen=True)
class Identity:
    """Caller identity carried by the signed token."""
    uid: str
    email: str = ""
    email_verified: bool = False
    admin: bool = False


def derive_referral_code(uid: str) -> str:
    return uid[-CODE_LENGTH:].upper()


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _generate_code() -> str:
    return secrets.token_hex(4).upper()[:CODE_LENGTH]


async def allocate_referral_code(uid: str, session=None) -> str:
    """Code derived from the uid; random when another account already holds it."""
    code = derive_referral_code(uid)
    for _ in range(10):
        if not await User.find_one(User.referral_code == code, session=session):
            return code
        code = _generate_code()
    raise BadRequestError("Could not generate unique referral code")


async def get_user(uid: str) -> User:
    user = await User.find_one(User.uid == uid)
    if not user:
        raise NotFoundError("User not found")
    return user


async def ensure_profile(identity: Identity, referred_by: str | None = None, device_id: str | None = None) -> User:
    """Create the account on first contact, or complete one a partner credit created."""
    code = normalize_code(referred_by)
    user = await User.find_one(User.uid == identity.uid)
    if user is None:
        user = User(
            uid=identity.uid,
            email=identity.email,
            email_verified=identity.email_verified,
            referral_code=await allocate_referral_code(identity.uid),
            referred_by=code or None,
            referral_pending=bool(code),
            device_id=device_id or None,
        )
        try:
            await user.insert()
            log.info("user_created", uid=user.uid, referred_by=user.referred_by)
            return user
        except DuplicateKeyError:
            user = await User.find_one(User.uid == identity.uid)
            if user is None:
                raise

    fields = {"email_verified": identity.email_verified, "updated_at": datetime.utcnow()}
    if identity.email:
        fields["email"] = identity.email
    if device_id and not user.device_id:
        fields["device_id"] = device_id
    await user.set(fields)
    if code and not user.referred_by and user.referral_status is None:
        user = await _attach_referral(user.uid, code) or user
    return user


async def _attach_referral(uid: str, code: str) -> User | None:
    # Only while no referral was ever recorded or resolved.
    return await User.find_one(
        User.uid == uid,
        User.referred_by == None,  # noqa: E711
        User.referral_status == None,  # noqa: E711
    ).update(
        Set({"referred_by": code, "referral_pending": True, "updated_at": datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )


async def apply_referral_code(uid: str, code: str) -> dict:
    """Record the referrer's code on the account. Idempotent: no-op once a code is set."""
    user = await get_user(uid)
    code = normalize_code(code)
    if not code:
        raise BadRequestError("Referral code required")
    if code == user.referral_code:
        raise BadRequestError("Cannot use your own referral code")
    if user.referred_by is not None or user.referral_status is not None:
        return {"status": "already_referred", "message": "You have already used a referral code"}
    if await _attach_referral(uid, code) is None:
        return {"status": "already_referred", "message": "You have already used a referral code"}
    log.info("referral_code_applied", uid=uid, code=code)
    return {"status": "applied", "message": "Referral code applied"}
