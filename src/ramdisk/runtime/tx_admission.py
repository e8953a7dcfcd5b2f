from __future__ import annotations

import json
from typing import Any, Optional

from ramdisk.runtime.chain_config import ChainConfig
from ramdisk.runtime.errors import ApplyError
from ramdisk.runtime.store import ContractStore
from ramdisk.runtime.tx_admission_types import TxEnvelope, TxVerdict
from ramdisk.runtime.tx_schema import SUPPORTED_ACTIONS, parse_payload


def _json_size_bytes(obj: Any) -> int:
    """Compute JSON byte size. If not serializable, return -1 (unknown)."""
    try:
        if isinstance(obj, TxEnvelope):
            obj = obj.to_json()
        return len(json.dumps(obj, separators=(",", ":"), ensure_ascii=False, sort_keys=True).encode("utf-8"))
    except (TypeError, ValueError):
        return -1


def _validate_node_size(action: str, parsed: Any, cfg: ChainConfig) -> Optional[TxVerdict]:
    if action != "setnode":
        return None
    size = len(parsed.data_bytes)
    if size > int(cfg.max_node_bytes):
        return TxVerdict.reject(
            "node_too_large",
            "node_data_exceeds_size_limit",
            {"bytes": size, "max_bytes": int(cfg.max_node_bytes)},
        )
    return None


def admit_tx(tx: Any, *, store: ContractStore, cfg: ChainConfig) -> TxVerdict:
    """Pre-execution checks for one call envelope.

    Shape, size, known action, payload schema, node size cap, signer account
    and nonce ordering. Authorization (who may touch which file) is the
    contract's job, not admission's.
    """
    env_size = _json_size_bytes(tx)
    if env_size < 0:
        return TxVerdict.reject("bad_shape", "envelope_not_json", None)
    if env_size > int(cfg.max_tx_bytes):
        return TxVerdict.reject(
            "tx_too_large",
            "tx_envelope_exceeds_size_limit",
            {"bytes": int(env_size), "max_bytes": int(cfg.max_tx_bytes)},
        )

    try:
        env = TxEnvelope.from_json(tx)
    except (TypeError, ValueError):
        return TxVerdict.reject("bad_shape", "envelope_fields_invalid", None)

    if not env.action:
        return TxVerdict.reject("bad_shape", "missing_action", None)
    if env.action not in SUPPORTED_ACTIONS:
        return TxVerdict.reject("unknown_action", "action_not_supported", {"action": env.action})
    if not env.signer:
        return TxVerdict.reject("bad_shape", "missing_signer", None)
    if int(env.nonce) < 1:
        return TxVerdict.reject("bad_shape", "nonce_must_be_positive", {"nonce": int(env.nonce)})

    try:
        parsed = parse_payload(env.action, env.payload)
    except ApplyError as e:
        return TxVerdict.reject("invalid_payload", e.reason, e.details if isinstance(e.details, dict) else None)

    size_verdict = _validate_node_size(env.action, parsed, cfg)
    if size_verdict is not None:
        return size_verdict

    if not store.account_exists(env.signer):
        return TxVerdict.reject("unknown_signer", "signer_not_found", {"signer": env.signer})

    expected = store.account_nonce(env.signer) + 1
    if int(env.nonce) != expected:
        return TxVerdict.reject("bad_nonce", "nonce_must_be_next", {"expected": expected, "got": int(env.nonce)})

    return TxVerdict.admit()


__all__ = ["TxEnvelope", "TxVerdict", "admit_tx"]
