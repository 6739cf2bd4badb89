from __future__ import annotations

from dataclasses import dataclass, field
import copy
from typing import Any, Dict, List

from tokenledger.ledger.store import token_key
from tokenledger.runtime.errors import UndefinedToken


Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class LedgerView:
    """
    Immutable read-only ledger view used by the API and tests.
    """

    ledger: Dict[str, Any] = field(default_factory=dict)
    operators_map: Dict[str, Any] = field(default_factory=dict)
    total_supply_map: Dict[str, Any] = field(default_factory=dict)
    available_supply_map: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    token_count: int = 0

    @classmethod
    def from_ledger(cls, state: Dict[str, Any]) -> "LedgerView":
        def _d(name: str) -> Dict[str, Any]:
            v = state.get(name)
            return copy.deepcopy(v) if isinstance(v, dict) else {}

        return cls(
            ledger=_d("ledger"),
            operators_map=_d("operators"),
            total_supply_map=_d("total_supply"),
            available_supply_map=_d("available_supply"),
            metadata=_d("token_metadata"),
            token_count=int(state.get("token_count", 0) or 0),
        )

    def to_ledger(self) -> Dict[str, Any]:
        return {
            "ledger": copy.deepcopy(self.ledger),
            "operators": copy.deepcopy(self.operators_map),
            "total_supply": copy.deepcopy(self.total_supply_map),
            "available_supply": copy.deepcopy(self.available_supply_map),
            "token_metadata": copy.deepcopy(self.metadata),
            "token_count": int(self.token_count),
        }

    def _require(self, token_id: Any) -> str:
        k = token_key(token_id)
        if k not in self.total_supply_map:
            raise UndefinedToken({"token_id": int(token_id)})
        return k

    def all_tokens(self) -> List[int]:
        return sorted(int(k) for k in self.metadata.keys())

    def token_metadata(self, token_id: Any) -> Json:
        k = self._require(token_id)
        return dict(self.metadata.get(k, {}))

    def total_supply(self, token_id: Any) -> int:
        return int(self.total_supply_map[self._require(token_id)])

    def available_supply(self, token_id: Any) -> int:
        return int(self.available_supply_map[self._require(token_id)])

    def balance_of(self, token_id: Any, account: str) -> int:
        k = self._require(token_id)
        holders = self.ledger.get(k)
        if not isinstance(holders, dict):
            return 0
        return int(holders.get(str(account), 0))

    def operators(self, token_id: Any, owner: str) -> List[str]:
        k = self._require(token_id)
        ops = self.operators_map.get(k, {}).get(str(owner))
        return list(ops) if isinstance(ops, list) else []

    def is_operator(self, token_id: Any, owner: str, operator: str) -> bool:
        """Non-raising membership check (unlike the transfer-time authorization)."""
        if str(owner) == str(operator):
            return True
        return str(operator) in self.operators(token_id, owner)

    def token_summary(self, token_id: Any) -> Json:
        k = self._require(token_id)
        out = dict(self.metadata.get(k, {}))
        out["total_supply"] = int(self.total_supply_map.get(k, 0))
        out["available_supply"] = int(self.available_supply_map.get(k, 0))
        return out
