# src/tokenledger/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module implements deterministic Store transitions for a subset of tx
types and exposes one `apply_<domain>(state, env)` entry point that returns a
result dict, or None when the tx type belongs to another domain.

Appliers mutate the state they are handed. Atomicity is the caller's job: the
executor passes a working copy and discards it on any raised ApplyError.
"""
