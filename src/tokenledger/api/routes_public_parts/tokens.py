from __future__ import annotations

from fastapi import APIRouter, Request

from tokenledger.api.routes_public_parts.common import _undefined_token, _view
from tokenledger.api.schemas import BalanceResponse, OperatorsResponse, TokenList, TokenSummary
from tokenledger.runtime.errors import UndefinedToken

router = APIRouter()


@router.get("/tokens", response_model=TokenList)
def tokens_list(request: Request) -> TokenList:
    v = _view(request)
    return TokenList(
        token_count=v.token_count,
        tokens=[TokenSummary(**v.token_summary(tid)) for tid in v.all_tokens()],
    )


@router.get("/tokens/{token_id}", response_model=TokenSummary)
def token_get(request: Request, token_id: int) -> TokenSummary:
    v = _view(request)
    try:
        return TokenSummary(**v.token_summary(token_id))
    except UndefinedToken as e:
        raise _undefined_token(e) from e


@router.get("/tokens/{token_id}/balances/{account}", response_model=BalanceResponse)
def token_balance(request: Request, token_id: int, account: str) -> BalanceResponse:
    v = _view(request)
    try:
        bal = v.balance_of(token_id, account)
    except UndefinedToken as e:
        raise _undefined_token(e) from e
    return BalanceResponse(token_id=token_id, account=account, balance=bal)


@router.get("/tokens/{token_id}/operators/{owner}", response_model=OperatorsResponse)
def token_operators(request: Request, token_id: int, owner: str) -> OperatorsResponse:
    v = _view(request)
    try:
        ops = v.operators(token_id, owner)
    except UndefinedToken as e:
        raise _undefined_token(e) from e
    return OperatorsResponse(token_id=token_id, owner=owner, operators=ops)
