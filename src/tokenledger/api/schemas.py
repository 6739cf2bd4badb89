from __future__ import annotations

"""Pydantic request/response schemas for the public API.

The ledger's canonical payload schemas live in tokenledger.runtime.tx_schema.
These exist only for HTTP input validation and a stable response shape.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., description="Operation type, e.g. TRANSFER")
    signer: str = Field(..., description="Caller account id")
    nonce: int = Field(..., description="Next sequential nonce of the signer")
    payload: Dict[str, Any] = Field(default_factory=dict)
    sig: Optional[str] = Field(default=None, description="Ed25519 signature, hex or base64")

    # Unknown envelope keys are rejected by admission, not here.
    model_config = {"extra": "allow"}


class TxReceipt(BaseModel):
    ok: bool
    tx_id: str
    tx_type: str
    result: Dict[str, Any]


class TokenSummary(BaseModel):
    token_id: int
    name: str
    decimals: int
    creator: str
    total_supply: int
    available_supply: int


class TokenList(BaseModel):
    ok: bool = True
    token_count: int
    tokens: List[TokenSummary]


class BalanceResponse(BaseModel):
    ok: bool = True
    token_id: int
    account: str
    balance: int


class OperatorsResponse(BaseModel):
    ok: bool = True
    token_id: int
    owner: str
    operators: List[str]
