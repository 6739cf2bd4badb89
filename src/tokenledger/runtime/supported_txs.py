# src/tokenledger/runtime/supported_txs.py
"""Tx types this build knows how to apply.

Admission rejects anything outside this set with `unsupported_tx`; the apply
router fails closed with `tx_unimplemented` if an unsupported type reaches it
directly.
"""

from __future__ import annotations

from typing import AbstractSet

from tokenledger.runtime.apply.issuance import ISSUANCE_TX_TYPES
from tokenledger.runtime.apply.operators import OPERATOR_TX_TYPES
from tokenledger.runtime.apply.query import QUERY_TX_TYPES
from tokenledger.runtime.apply.transfer import TRANSFER_TX_TYPES

SUPPORTED_TX_TYPES: AbstractSet[str] = frozenset(
    set(TRANSFER_TX_TYPES) | set(OPERATOR_TX_TYPES) | set(ISSUANCE_TX_TYPES) | set(QUERY_TX_TYPES)
)

# Tx types that never change the Store (their only output is a callback).
READ_ONLY_TX_TYPES: AbstractSet[str] = frozenset(QUERY_TX_TYPES)


__all__ = ["SUPPORTED_TX_TYPES", "READ_ONLY_TX_TYPES"]
