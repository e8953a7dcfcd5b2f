# src/ramdisk/runtime/chain_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from ramdisk.ledger.names import is_valid_name

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class ChainConfig:
    chain_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file path for all node persistence.
    db_path: str
    genesis_path: str

    # Account hosting the name-auction registry (deployment specific).
    registry_account: str

    # Per-node data cap enforced at admission (contract itself has no cap).
    max_node_bytes: int
    max_tx_bytes: int

    # delnodec: False = stop at first gap only; True = also stop after `count`.
    delnodec_enforce_count: bool

    require_signatures: bool

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def validate_chain_config(cfg: ChainConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.chain_id, str) or not cfg.chain_id.strip():
        raise ValueError("chain_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if not cfg.registry_account or not is_valid_name(cfg.registry_account):
        raise ValueError(f"registry_account must be a valid account name; got: {cfg.registry_account!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if int(cfg.max_node_bytes) <= 0:
        raise ValueError(f"max_node_bytes must be > 0; got: {cfg.max_node_bytes}")

    # Hex doubles node data on the wire.
    if int(cfg.max_tx_bytes) < 2 * int(cfg.max_node_bytes):
        raise ValueError(
            f"max_tx_bytes must be >= 2 * max_node_bytes; got: {cfg.max_tx_bytes} < {2 * int(cfg.max_node_bytes)}"
        )

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if mode == "prod" and not cfg.require_signatures:
        raise ValueError("require_signatures cannot be disabled in prod mode")

    if str(cfg.log_level or "").upper() not in _LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}; got: {cfg.log_level!r}")


def default_chain_config() -> ChainConfig:
    return ChainConfig(
        chain_id="ramdisk-dev",
        # No config file must not mean a permissive posture.
        mode="prod",
        db_path="./data/ramdisk.db",
        genesis_path="",
        registry_account="eosio",
        max_node_bytes=64_000,
        max_tx_bytes=136 * 1024,
        delnodec_enforce_count=False,
        require_signatures=True,
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def _merge(d: ChainConfig, raw: Json) -> ChainConfig:
    return ChainConfig(
        chain_id=_as_str(raw.get("chain_id"), d.chain_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        genesis_path=str(raw.get("genesis_path") or d.genesis_path),
        registry_account=_as_str(raw.get("registry_account"), d.registry_account),
        max_node_bytes=_as_int(raw.get("max_node_bytes"), d.max_node_bytes),
        max_tx_bytes=_as_int(raw.get("max_tx_bytes"), d.max_tx_bytes),
        delnodec_enforce_count=_as_bool(raw.get("delnodec_enforce_count"), d.delnodec_enforce_count),
        require_signatures=_as_bool(raw.get("require_signatures"), d.require_signatures),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
    )


_ENV_KEYS = {
    "chain_id": "RAMDISK_CHAIN_ID",
    "mode": "RAMDISK_MODE",
    "db_path": "RAMDISK_DB_PATH",
    "genesis_path": "RAMDISK_GENESIS_PATH",
    "registry_account": "RAMDISK_REGISTRY_ACCOUNT",
    "max_node_bytes": "RAMDISK_MAX_NODE_BYTES",
    "max_tx_bytes": "RAMDISK_MAX_TX_BYTES",
    "delnodec_enforce_count": "RAMDISK_DELNODEC_ENFORCE_COUNT",
    "require_signatures": "RAMDISK_REQUIRE_SIGNATURES",
    "api_host": "RAMDISK_API_HOST",
    "api_port": "RAMDISK_API_PORT",
    "log_level": "RAMDISK_LOG_LEVEL",
}


def _env_overrides() -> Json:
    out: Json = {}
    for key, var in _ENV_KEYS.items():
        v = os.environ.get(var)
        if v is not None and v.strip():
            out[key] = v.strip()
    return out


def read_chain_config_file(path: str) -> ChainConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("chain config must be a JSON object")

    cfg = _merge(default_chain_config(), raw)
    validate_chain_config(cfg)
    return cfg


def load_chain_config(*, config_path: Optional[str] = None) -> ChainConfig:
    """File (RAMDISK_CHAIN_CONFIG_PATH) or defaults, then RAMDISK_* env overrides."""
    p = config_path or os.environ.get("RAMDISK_CHAIN_CONFIG_PATH")
    base = read_chain_config_file(p) if p else default_chain_config()

    cfg = _merge(base, _env_overrides())
    validate_chain_config(cfg)
    return cfg


def with_overrides(cfg: ChainConfig, **changes: Any) -> ChainConfig:
    out = replace(cfg, **changes)
    validate_chain_config(out)
    return out
