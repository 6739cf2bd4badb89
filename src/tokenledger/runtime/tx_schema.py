from __future__ import annotations

"""Transaction payload schemas.

Admission validates every payload against the model registered for its tx type
before the envelope is applied. Schemas are strict: unknown keys are rejected,
integers are not coerced from strings or bools, and every quantity is a natural
number.

Apply-layer code still enforces semantics (token existence, authorization,
balances, supply). These schemas are early shape checks so that malformed
payloads are rejected with a clear reason instead of a domain error.
"""

from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError, model_validator

Json = Dict[str, Any]


# ---------------------------------------------------------------------------
# Base Models
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Strict model: reject unknown keys; field types are strict scalars."""

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# Ledger payloads
# ---------------------------------------------------------------------------


class TransferLeg(_StrictModel):
    to_: StrictStr = Field(..., min_length=1)
    token_id: StrictInt = Field(..., ge=0)
    amount: StrictInt = Field(..., ge=0)


class TransferItem(_StrictModel):
    from_: StrictStr = Field(..., min_length=1)
    txs: List[TransferLeg]


class TransferPayload(_StrictModel):
    transfers: List[TransferItem]


class OperatorParam(_StrictModel):
    owner: StrictStr = Field(..., min_length=1)
    operator: StrictStr = Field(..., min_length=1)
    token_id: StrictInt = Field(..., ge=0)


class OperatorUpdate(_StrictModel):
    add_operator: Optional[OperatorParam] = None
    remove_operator: Optional[OperatorParam] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "OperatorUpdate":
        if (self.add_operator is None) == (self.remove_operator is None):
            raise ValueError("exactly one of add_operator/remove_operator is required")
        return self


class UpdateOperatorsPayload(_StrictModel):
    updates: List[OperatorUpdate]


class BalanceRequest(_StrictModel):
    owner: StrictStr = Field(..., min_length=1)
    token_id: StrictInt = Field(..., ge=0)


class BalanceOfPayload(_StrictModel):
    requests: List[BalanceRequest]
    callback: StrictStr = Field(..., min_length=1)


class CreateTokenPayload(_StrictModel):
    name: StrictStr
    decimals: StrictInt = Field(..., ge=0)
    supply: StrictInt = Field(..., ge=0)


class MintTokenPayload(_StrictModel):
    token_id: StrictInt = Field(..., ge=0)
    amount: StrictInt = Field(..., ge=0)
    destination: StrictStr = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Tx type -> schema mapping
# ---------------------------------------------------------------------------

Schema = Type[BaseModel]

_SCHEMA_BY_TX_TYPE: Dict[str, Schema] = {
    "TRANSFER": TransferPayload,
    "UPDATE_OPERATORS": UpdateOperatorsPayload,
    "BALANCE_OF": BalanceOfPayload,
    "CREATE_TOKEN": CreateTokenPayload,
    "MINT_TOKEN": MintTokenPayload,
}


def schema_for(tx_type: str) -> Optional[Schema]:
    t = str(tx_type or "").strip().upper()
    if not t:
        return None
    return _SCHEMA_BY_TX_TYPE.get(t)


def batch_items(tx_type: str, payload: Any) -> int:
    """Number of sub-operations a payload asks for (legs, updates or requests)."""
    if not isinstance(payload, dict):
        return 0
    t = str(tx_type or "").strip().upper()
    if t == "TRANSFER":
        n = 0
        for tr in payload.get("transfers") or []:
            if isinstance(tr, dict) and isinstance(tr.get("txs"), list):
                n += len(tr["txs"])
        return n
    if t == "UPDATE_OPERATORS":
        return len(payload.get("updates") or [])
    if t == "BALANCE_OF":
        return len(payload.get("requests") or [])
    return 1


def validate_payload(*, tx_type: str, payload: Any) -> Tuple[bool, str, str, Optional[Dict[str, Any]]]:
    """Validate payload against the schema for `tx_type`.

    Returns: (ok, code, reason, details)
    """
    sch = schema_for(tx_type)
    if sch is None:
        return False, "unsupported_tx", "no_schema_for_tx_type", {"tx_type": str(tx_type)}

    if payload is None:
        return False, "schema:payload_missing", "payload_required", None

    if not isinstance(payload, dict):
        return False, "schema:payload_not_object", "payload_must_be_object", None

    try:
        sch.model_validate(payload)
        return True, "", "", None
    except ValidationError as ve:
        errors = ve.errors(include_url=False, include_context=False, include_input=False)
        return False, "schema:validation_error", "payload_schema_mismatch", {"errors": errors}


__all__ = [
    "TransferPayload",
    "UpdateOperatorsPayload",
    "BalanceOfPayload",
    "CreateTokenPayload",
    "MintTokenPayload",
    "schema_for",
    "batch_items",
    "validate_payload",
]
