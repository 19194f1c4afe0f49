"""Exception types for the offer protocol.

Every rejection leaves ledger state unchanged. Each class carries a short
machine-readable ``code`` so callers (and the demo tooling) can branch on the
category without string matching.
"""

from __future__ import annotations

from typing import Any


class OfferError(Exception):
    """Base class for protocol rejections."""

    code = "offer_error"


class VerificationFailure(OfferError):
    """The state-proof verifier rejected a witness."""

    code = "verification_failure"

    def __init__(self, reason: Any, detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail
        label = getattr(reason, "value", reason)
        super().__init__(f"{label}: {detail}" if detail else str(label))


class AuthorizationFailure(OfferError):
    """Caller is not the principal recorded for this operation."""

    code = "authorization_failure"


class StateConflict(OfferError):
    """Operation conflicts with the current (possibly terminal) state."""

    code = "state_conflict"


class TemporalViolation(OfferError):
    """Operation is outside its time window (bid after close, claim before close)."""

    code = "temporal_violation"


class PaymentFailure(OfferError):
    """A payment could not be made (insufficient funds, recipient refused)."""

    code = "payment_failure"


class InvalidParameter(OfferError, ValueError):
    """Malformed input: bad identity, zero amount, wrong token."""

    code = "invalid_parameter"


class UnknownOffer(OfferError, KeyError):
    """No offer was ever issued under this id."""

    code = "unknown_offer"

    def __str__(self) -> str:
        return Exception.__str__(self)
