from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from ramdisk.ledger.names import is_valid_name, normalize_name
from ramdisk.runtime.chain_config import ChainConfig
from ramdisk.runtime.domain_apply import ApplyError, apply_tx_atomic
from ramdisk.runtime.genesis_config import apply_genesis_to_store, load_genesis
from ramdisk.runtime.runtime_logging import log_event
from ramdisk.runtime.sigverify import SignatureAuthenticator
from ramdisk.runtime.sqlite_db import SqliteDB, SqliteStore
from ramdisk.runtime.store import ContractStore
from ramdisk.runtime.tx_admission import admit_tx
from ramdisk.runtime.tx_admission_types import TxEnvelope
from ramdisk.runtime.tx_id import compute_tx_id

Json = Dict[str, Any]

_LOG = logging.getLogger("ramdisk.executor")


def _ensure_parent(path: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)


class ExecutorError(RuntimeError):
    pass


class RamdiskExecutor:
    """Single-writer host for the ramdisk contract.

    submit_tx() runs: admission -> contract apply (one store transaction)
    -> nonce bump + receipt inside the same transaction. A call that fails
    anywhere leaves the store untouched, nonce included.
    """

    def __init__(self, *, cfg: ChainConfig, store: Optional[ContractStore] = None) -> None:
        self.cfg = cfg
        self.chain_id = str(cfg.chain_id)
        self._lock = threading.Lock()

        if store is None:
            _ensure_parent(cfg.db_path)
            store = SqliteStore(db=SqliteDB(path=cfg.db_path))
        self._store = store

        self._check_chain_id_fail_closed()

        if cfg.genesis_path:
            gen = load_genesis(cfg.genesis_path)
            if gen.chain_id and gen.chain_id != self.chain_id:
                raise ExecutorError(
                    f"chain_id mismatch: genesis={gen.chain_id!r} executor={self.chain_id!r}. Refuse to start."
                )
            n_acct, n_bids = apply_genesis_to_store(self._store, gen, registry=cfg.registry_account)
            log_event(_LOG, "genesis_applied", accounts=n_acct, name_bids=n_bids, path=cfg.genesis_path)

    def _check_chain_id_fail_closed(self) -> None:
        if not isinstance(self._store, SqliteStore):
            return
        db_chain_id = (self._store.get_meta("chain_id") or "").strip()
        if db_chain_id and db_chain_id != self.chain_id:
            raise ExecutorError(
                f"chain_id mismatch: db={db_chain_id!r} executor={self.chain_id!r}. Refuse to start."
            )
        if not db_chain_id:
            self._store.set_meta("chain_id", self.chain_id)

    # ----------------------------
    # Public accessors
    # ----------------------------

    @property
    def store(self) -> ContractStore:
        return self._store

    # ----------------------------
    # Call submission
    # ----------------------------

    def submit_tx(self, env: Json) -> Json:
        if not isinstance(env, dict):
            return {"ok": False, "error": "bad_shape", "reason": "envelope_not_object", "details": {}}

        with self._lock:
            verdict = admit_tx(env, store=self._store, cfg=self.cfg)
            if not verdict.ok:
                log_event(
                    _LOG,
                    "tx_rejected",
                    level=logging.WARNING,
                    stage="admission",
                    code=verdict.code,
                    reason=verdict.reason,
                    action=str(env.get("action") or ""),
                    signer=str(env.get("signer") or ""),
                )
                return {"ok": False, "error": verdict.code, "reason": verdict.reason, "details": verdict.details or {}}

            tx = TxEnvelope.from_json(env)
            tx_id = compute_tx_id(chain_id=self.chain_id, env=tx)
            auth = SignatureAuthenticator(
                store=self._store,
                env=tx,
                chain_id=self.chain_id,
                require_signatures=self.cfg.require_signatures,
            )
            seq_box: List[int] = []

            def _record(store: ContractStore, meta: Json) -> None:
                store.set_account_nonce(tx.signer, int(tx.nonce))
                seq_box.append(
                    store.append_receipt(
                        {
                            "tx_id": tx_id,
                            "action": tx.action,
                            "signer": tx.signer,
                            "nonce": int(tx.nonce),
                            "result": meta,
                        }
                    )
                )

            try:
                meta = apply_tx_atomic(
                    self._store,
                    tx,
                    auth=auth,
                    registry=self.cfg.registry_account,
                    delnodec_enforce_count=self.cfg.delnodec_enforce_count,
                    on_commit=_record,
                )
            except ApplyError as e:
                log_event(
                    _LOG,
                    "tx_rejected",
                    level=logging.WARNING,
                    stage="apply",
                    tx_id=tx_id,
                    code=e.code,
                    reason=e.reason,
                    action=tx.action,
                    signer=tx.signer,
                )
                return {"ok": False, "tx_id": tx_id, "error": e.code, "reason": e.reason, "details": e.details}

        seq = seq_box[0] if seq_box else 0
        log_event(_LOG, "tx_applied", tx_id=tx_id, seq=seq, action=tx.action, signer=tx.signer, nonce=int(tx.nonce))
        return {"ok": True, "tx_id": tx_id, "seq": seq, "result": meta}

    # ----------------------------
    # Read-only inspection
    # ----------------------------

    def get_file(self, filename: str) -> Optional[Json]:
        fn = _lookup_name(filename)
        if fn is None:
            return None
        rec = self._store.get_file(fn)
        return rec.to_json() if rec is not None else None

    def node_ids(self, filename: str) -> List[int]:
        fn = _lookup_name(filename)
        if fn is None:
            return []
        return self._store.node_ids(fn)

    def get_node(self, filename: str, node_id: int) -> Optional[Json]:
        fn = _lookup_name(filename)
        if fn is None:
            return None
        node = self._store.get_node(fn, int(node_id))
        return node.to_json() if node is not None else None

    def ram_usage(self, account: str) -> int:
        acct = _lookup_name(account)
        if acct is None:
            return 0
        return self._store.ram_usage(acct)

    def account_nonce(self, account: str) -> int:
        acct = _lookup_name(account)
        if acct is None or not self._store.account_exists(acct):
            return 0
        return self._store.account_nonce(acct)


def _lookup_name(raw: str) -> Optional[str]:
    s = str(raw or "").strip()
    if not s or not is_valid_name(s):
        return None
    return normalize_name(s) or None
