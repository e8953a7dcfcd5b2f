# src/ramdisk/runtime/genesis_config.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

from ramdisk.ledger.names import is_valid_name, normalize_name
from ramdisk.ledger.types import NameBid
from ramdisk.runtime.store import ContractStore

Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class GenesisAccount:
    account: str
    pubkeys: List[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class GenesisConfig:
    chain_id: str
    accounts: List[GenesisAccount]
    name_bids: List[NameBid]


def _name_or_none(raw: Any) -> str | None:
    s = str(raw or "").strip()
    if not s or not is_valid_name(s):
        return None
    return normalize_name(s) or None


def parse_genesis(obj: Any) -> GenesisConfig:
    """Parse a genesis object.

    Supported input shape:
      {
        "chain_id": "...",
        "accounts": [ {"account": "alice", "pubkeys": ["<hex>", ...]}, ... ],
        "name_bids": [ {"newname": "bob", "high_bidder": "carol", "high_bid": -1,
                        "last_bid_time_ms": 0}, ... ]
      }

    Malformed entries are skipped; malformed top-level input raises ValueError.
    """
    if not isinstance(obj, dict):
        raise ValueError("genesis config must be a JSON object")

    accounts: List[GenesisAccount] = []
    for rec in obj.get("accounts") or []:
        if not isinstance(rec, dict):
            continue
        acct = _name_or_none(rec.get("account"))
        if acct is None:
            continue
        pks = rec.get("pubkeys")
        if not isinstance(pks, list):
            pk = rec.get("pubkey")
            pks = [pk] if isinstance(pk, str) else []
        accounts.append(GenesisAccount(account=acct, pubkeys=[str(p).strip() for p in pks if str(p).strip()]))

    bids: List[NameBid] = []
    for rec in obj.get("name_bids") or []:
        if not isinstance(rec, dict):
            continue
        newname = _name_or_none(rec.get("newname"))
        bidder = _name_or_none(rec.get("high_bidder"))
        if newname is None or bidder is None:
            continue
        try:
            high_bid = int(rec.get("high_bid", 0))
            last_bid_time_ms = int(rec.get("last_bid_time_ms", 0) or 0)
        except (TypeError, ValueError):
            continue
        bids.append(
            NameBid(
                newname=newname,
                high_bidder=bidder,
                high_bid=high_bid,
                last_bid_time_ms=last_bid_time_ms,
            )
        )

    return GenesisConfig(chain_id=str(obj.get("chain_id") or "").strip(), accounts=accounts, name_bids=bids)


def load_genesis(path: str) -> GenesisConfig:
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(str(p))
    with p.open("r", encoding="utf-8") as f:
        return parse_genesis(json.load(f))


def apply_genesis_to_store(store: ContractStore, cfg: GenesisConfig, *, registry: str) -> Tuple[int, int]:
    """Seed accounts and the name-auction registry mirror.

    Idempotent (upserts). Returns (accounts, bids) written.
    """
    with store.transaction():
        for acct in cfg.accounts:
            store.put_account(acct.account, keys=list(acct.pubkeys))
        for bid in cfg.name_bids:
            store.put_name_bid(registry, bid)
    return len(cfg.accounts), len(cfg.name_bids)
