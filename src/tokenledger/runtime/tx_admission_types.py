from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Optional

Json = Dict[str, Any]


@dataclass(frozen=True)
class TxReject:
    """Why admission turned an envelope away."""

    code: str
    reason: str
    details: Optional[Json] = None

    def receipt(self, tx_id: str) -> Json:
        return {"ok": False, "tx_id": tx_id, "error": self.code, "reason": self.reason, "details": self.details}


@dataclass(frozen=True)
class TxVerdict:
    """Admission outcome. Unpacks as `ok, reject` (reject is None when admitted)."""

    rejection: Optional[TxReject] = None

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @property
    def code(self) -> str:
        return "ok" if self.rejection is None else self.rejection.code

    @property
    def reason(self) -> str:
        return "admitted" if self.rejection is None else self.rejection.reason

    @property
    def details(self) -> Optional[Json]:
        return None if self.rejection is None else self.rejection.details

    def __iter__(self) -> Iterator[Any]:
        yield self.ok
        yield self.rejection

    @classmethod
    def admit(cls) -> "TxVerdict":
        return cls(None)

    @classmethod
    def reject(cls, code: str, reason: str, details: Optional[Json] = None) -> "TxVerdict":
        return cls(TxReject(code, reason, details))


@dataclass(frozen=True)
class TxEnvelope:
    """One dispatched operation.

    `signer` is the caller identity. By the time an envelope reaches apply_tx the
    host has authenticated it, so the core treats it as trusted and opaque.
    """

    tx_type: str
    signer: str
    nonce: int
    payload: Json
    sig: str = ""

    def identity(self) -> Json:
        # Everything a signature and a tx_id commit to; `sig` is excluded.
        return {"tx_type": self.tx_type, "signer": self.signer, "nonce": self.nonce, "payload": self.payload}

    @classmethod
    def from_json(cls, j: Any) -> "TxEnvelope":
        if isinstance(j, TxEnvelope):
            return j
        raw: Mapping[str, Any] = j if isinstance(j, Mapping) else dict(j)
        return cls(
            tx_type=str(raw.get("tx_type") or "").strip().upper(),
            signer=str(raw.get("signer") or ""),
            nonce=int(raw.get("nonce") or 0),
            payload=dict(raw.get("payload") or {}),
            sig=str(raw.get("sig") or ""),
        )

    def to_json(self) -> Json:
        out = self.identity()
        out["sig"] = self.sig
        return out
