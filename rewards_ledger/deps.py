"""Shared FastAPI dependencies."""

from fastapi import Request

from rewards_ledger.core.exceptions import ForbiddenError, UnauthorizedError
from rewards_ledger.core.security import load_identity_token
from rewards_ledger.services.users import Identity

IDENTITY_COOKIE_NAME = "rewards_identity"


def _token_from_request(request: Request) -> str | None:
    auth = request.headers.get("Authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return request.cookies.get(IDENTITY_COOKIE_NAME)


async def get_current_identity(request: Request) -> Identity:
    """Dependency: verify the signed identity token (Bearer header or cookie)."""
    token = _token_from_request(request)
    if not token:
        raise UnauthorizedError("Not authenticated")
    payload = load_identity_token(token)
    if not payload:
        raise UnauthorizedError("Invalid or expired token")
    uid = payload.get("uid")
    if not uid:
        raise UnauthorizedError("Invalid token")
    return Identity(
        uid=str(uid),
        email=payload.get("email") or "",
        email_verified=bool(payload.get("email_verified")),
        admin=bool(payload.get("admin")),
    )


async def require_admin(request: Request) -> Identity:
    """Dependency: require the admin claim."""
    identity = await get_current_identity(request)
    if not identity.admin:
        raise ForbiddenError("Admin only")
    return identity
