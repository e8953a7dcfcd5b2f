# src/ramdisk/runtime/tx_id.py
from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

from ramdisk.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _json_canonical(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_tx_id(*, chain_id: str, env: TxEnvelope) -> str:
    """Canonical tx id: sha256 over chain id + envelope, signature excluded."""
    obj: Json = {
        "chain_id": str(chain_id),
        "action": env.action,
        "signer": env.signer,
        "nonce": int(env.nonce),
        "payload": env.payload,
    }
    return hashlib.sha256(_json_canonical(obj)).hexdigest()
