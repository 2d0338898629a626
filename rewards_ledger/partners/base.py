"""Canonical credit event and the adapter contract every partner implements."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from rewards_ledger.core.exceptions import (
    InvalidAmountError,
    InvalidAuthError,
    MethodNotAllowedError,
    MissingParameterError,
)
from rewards_ledger.core.security import secrets_match

# Query + body merged; repeated keys arrive as lists.
Params = Mapping[str, Any]

REVERSAL_STATUSES = frozenset({"2", "reversed", "reversal", "chargeback", "void"})


@dataclass(frozen=True)
class CreditEvent:
    partner: str
    uid: str
    external_tx_id: str
    gross_usd: float
    offer_id: str | None = None
    is_reversal: bool = False
    tx_id_synthesized: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


def _scalar(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, (list, tuple)):
        if not raw:
            return ""
        raw = raw[-1]
        if raw is None:
            return ""
    return str(raw).strip()


def first_param(params: Params, *names: str) -> str:
    """First non-empty value among names; for repeated keys the last occurrence wins."""
    for name in names:
        value = _scalar(params.get(name))
        if value:
            return value
    return ""


def param_list(params: Params, name: str) -> list[str]:
    """All values for name, splitting comma-joined entries."""
    raw = params.get(name)
    if raw is None:
        return []
    values = raw if isinstance(raw, (list, tuple)) else [raw]
    out: list[str] = []
    for entry in values:
        out.extend(part.strip() for part in str(entry).split(","))
    return [v for v in out if v]


def parse_amount(raw: str, *, cents: bool = False) -> float:
    """Positive finite USD amount; cents are converted to dollars at cent precision."""
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError() from None
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError()
    if cents:
        value = (value / 100).quantize(Decimal("0.01"))
        if value <= 0:
            raise InvalidAmountError()
    return float(value)


def status_is_reversal(status: str, codes: Iterable[str] = REVERSAL_STATUSES) -> bool:
    return status.strip().lower() in codes


class PartnerAdapter(ABC):
    """
    Turns one partner HTTP notification into a CreditEvent, or raises.

    Adapters are pure: no storage access. parse() rejects unsupported methods
    first, then authenticates, then normalizes.
    """

    name: str = ""
    allowed_methods: frozenset[str] = frozenset({"GET", "POST"})
    ack_body: str = "OK"
    # Partners whose postbacks must target an existing account (404 otherwise).
    require_existing_user: bool = False

    def __init__(self, secret: str = ""):
        self.secret = secret

    def parse(self, method: str, params: Params) -> CreditEvent:
        if method.upper() not in self.allowed_methods:
            raise MethodNotAllowedError()
        self.authenticate(params)
        return self.normalize(params)

    @abstractmethod
    def authenticate(self, params: Params) -> None:
        """Raise InvalidAuthError (or MissingParameterError) when the request is not genuine."""

    @abstractmethod
    def normalize(self, params: Params) -> CreditEvent:
        """Build the canonical event; raise MissingParameterError / InvalidAmountError."""


class SharedSecretAdapter(PartnerAdapter):
    """Partners that echo a server-held secret back in one of a few parameters."""

    secret_params: tuple[str, ...] = ("secret",)

    def authenticate(self, params: Params) -> None:
        provided = first_param(params, *self.secret_params)
        if not secrets_match(provided, self.secret):
            raise InvalidAuthError()
