import hashlib
import hmac
from typing import Any, Iterable

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from rewards_ledger.core.config import get_settings

IDENTITY_MAX_AGE = 7 * 24 * 3600


def get_identity_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="rewards-identity",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_identity_token(payload: dict[str, Any]) -> str:
    """Sign an identity payload (uid, email_verified, admin) as issued by the auth gateway."""
    return get_identity_serializer().dumps(payload)


def load_identity_token(token: str, max_age_seconds: int = IDENTITY_MAX_AGE) -> dict[str, Any] | None:
    serializer = get_identity_serializer()
    try:
        return serializer.loads(token, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None


def secrets_match(provided: str | None, expected: str | None) -> bool:
    """Constant-time equality; an unset server secret never matches."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(str(provided).encode("utf-8"), str(expected).encode("utf-8"))


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest().lower()


def signature_matches(provided: Iterable[str], expected_hash: str, raw_secret: str) -> bool:
    """
    True if any provided signature equals the expected hash, case-insensitively.
    Partners that cannot hash may send the raw secret in place of the signature.
    """
    if not raw_secret:
        return False
    expected_hash = expected_hash.lower()
    raw_lower = raw_secret.lower()
    for sig in provided:
        candidate = sig.strip().lower()
        if not candidate:
            continue
        if hmac.compare_digest(candidate, expected_hash) or hmac.compare_digest(candidate, raw_lower):
            return True
    return False


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
