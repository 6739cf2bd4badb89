from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass
class ApplyError(Exception):
    """Canonical error type for domain apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class LedgerError(ApplyError):
    """Base for the named ledger failures.

    Each subclass pins its own (code, reason) pair so callers can match on either
    the exception type or the stable string code carried in receipts.
    """

    CODE = "ledger_error"
    REASON = "FA2_LEDGER_ERROR"

    def __init__(self, details: Optional[Json] = None) -> None:
        super().__init__(self.CODE, self.REASON, details)


class UndefinedToken(LedgerError):
    """Reference to a token id that was never created."""

    CODE = "undefined_token"
    REASON = "FA2_TOKEN_UNDEFINED"


class InsufficientBalance(LedgerError):
    """Debit exceeds the current balance."""

    CODE = "insufficient_balance"
    REASON = "FA2_INSUFFICIENT_BALANCE"


class NotFound(LedgerError):
    """No operator entry recorded for the (token_id, owner) pair."""

    CODE = "not_found"
    REASON = "FA2_OPERATOR_NOT_FOUND"


class NotOperator(LedgerError):
    """Caller is neither the owner nor a delegated operator."""

    CODE = "not_operator"
    REASON = "FA2_NOT_OPERATOR"


class NotOwner(LedgerError):
    """Caller does not own the token class (mint) or the holdings (operators)."""

    CODE = "not_owner"
    REASON = "FA2_NOT_OWNER"


class SupplyExhausted(LedgerError):
    """Mint quantity exceeds the remaining available supply."""

    CODE = "supply_exhausted"
    REASON = "FA2_SUPPLY_EXHAUSTED"


__all__ = [
    "ApplyError",
    "LedgerError",
    "UndefinedToken",
    "InsufficientBalance",
    "NotFound",
    "NotOperator",
    "NotOwner",
    "SupplyExhausted",
]
