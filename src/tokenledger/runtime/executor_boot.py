# src/tokenledger/runtime/executor_boot.py

from __future__ import annotations

from typing import Optional

from tokenledger.runtime.callbacks import CallbackRouter
from tokenledger.runtime.executor import LedgerExecutor
from tokenledger.runtime.ledger_config import LedgerConfig, load_ledger_config
from tokenledger.runtime.sigverify import load_keyring


def build_executor(cfg: Optional[LedgerConfig] = None, *, callbacks: Optional[CallbackRouter] = None) -> LedgerExecutor:
    """
    Build a LedgerExecutor from an explicit config or, if omitted, from
    TOKENLEDGER_CONFIG_PATH / TOKENLEDGER_* environment variables.

    `tokenledger.api.app` calls this with no args in production.
    """
    c = cfg or load_ledger_config()
    return LedgerExecutor(
        ledger_id=c.ledger_id,
        db_path=c.db_path if c.persistent else None,
        keyring=load_keyring(c.keyring_path),
        require_signatures=c.require_signatures,
        check_invariants=c.check_invariants,
        callbacks=callbacks if callbacks is not None else CallbackRouter(allow_hosts=c.callback_allow_hosts),
        max_batch_items=c.max_batch_items,
    )
