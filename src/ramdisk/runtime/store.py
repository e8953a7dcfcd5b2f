"""
ramdisk: Contract Store (host storage abstraction)

Goal:
  Give the contract a small, stable view of the host ledger's storage so the
  apply modules stay pure and testable.

The host guarantees:
  * point lookup and ordered iteration inside one scope
  * one scope per file name (files + nodes), plus global accounts / name bids
  * all-or-nothing commit per call (transaction())

Backends:
  * MemoryStore  - arena of ordered maps, one per file name (this module)
  * SqliteStore  - durable backend (ramdisk.runtime.sqlite_db)
"""

from __future__ import annotations

import bisect
import copy
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, ContextManager, Dict, Iterator, List, Optional, Protocol, Tuple, runtime_checkable

from ramdisk.ledger.types import FileRecord, NameBid, NodeRecord, Owner, UINT64_MAX

Json = Dict[str, Any]

# Billable bytes per stored row on top of key/data size.
ROW_OVERHEAD_BYTES = 112
NAME_BYTES = 8
NODE_ID_BYTES = 8


def _now_ms() -> int:
    return int(time.time() * 1000)


def file_row_bytes() -> int:
    return ROW_OVERHEAD_BYTES + NAME_BYTES


def node_row_bytes(data: bytes) -> int:
    return ROW_OVERHEAD_BYTES + NODE_ID_BYTES + len(data)


# ---------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------

@runtime_checkable
class ContractStore(Protocol):
    """
    Storage surface consumed by the contract.

    Every mutating method must run inside transaction(); the backend discards
    all writes of a transaction that exits with an exception.
    """

    def transaction(self) -> ContextManager[Any]: ...

    # files (one record per file-name scope)
    def get_file(self, filename: str) -> Optional[FileRecord]: ...
    def insert_file(self, rec: FileRecord) -> None: ...
    def set_file_owner(self, filename: str, owner: Owner) -> None: ...
    def erase_file(self, filename: str) -> None: ...

    # nodes (ordered by id inside one file-name scope)
    def get_node(self, filename: str, node_id: int) -> Optional[NodeRecord]: ...
    def insert_node(self, filename: str, node: NodeRecord) -> None: ...
    def set_node_data(self, filename: str, node_id: int, data: bytes) -> None: ...
    def erase_node(self, filename: str, node_id: int) -> bool: ...
    def lower_bound(self, filename: str, node_id: int) -> Optional[int]: ...
    def node_ids(self, filename: str) -> List[int]: ...
    def clear_nodes(self, filename: str) -> int: ...

    # accounts / name-auction registry (read by the contract)
    def account_exists(self, account: str) -> bool: ...
    def account_keys(self, account: str) -> List[str]: ...
    def account_nonce(self, account: str) -> int: ...
    def set_account_nonce(self, account: str, nonce: int) -> None: ...
    def put_account(self, account: str, *, keys: List[str]) -> None: ...
    def get_name_bid(self, registry: str, newname: str) -> Optional[NameBid]: ...
    def put_name_bid(self, registry: str, bid: NameBid) -> None: ...

    # resource accounting + receipts
    def ram_usage(self, payer: str) -> int: ...
    def append_receipt(self, receipt: Json) -> int: ...


def next_node_id(store: ContractStore, filename: str, after: int) -> Optional[int]:
    """First existing node id strictly greater than `after`."""
    if int(after) >= UINT64_MAX:
        return None
    return store.lower_bound(filename, int(after) + 1)


# ---------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------

@dataclass(slots=True)
class _NodeTable:
    """Ordered map node_id -> NodeRecord for one file name."""

    ids: List[int] = field(default_factory=list)
    rows: Dict[int, NodeRecord] = field(default_factory=dict)

    def copy(self) -> "_NodeTable":
        return _NodeTable(ids=list(self.ids), rows=dict(self.rows))


@dataclass(slots=True)
class _MemState:
    files: Dict[str, FileRecord] = field(default_factory=dict)
    nodes: Dict[str, _NodeTable] = field(default_factory=dict)
    accounts: Dict[str, Json] = field(default_factory=dict)
    bids: Dict[Tuple[str, str], NameBid] = field(default_factory=dict)
    ram: Dict[str, int] = field(default_factory=dict)
    receipts: List[Json] = field(default_factory=list)

    def snapshot(self) -> "_MemState":
        # Records are immutable; copying the containers is enough.
        return _MemState(
            files=dict(self.files),
            nodes={k: v.copy() for k, v in self.nodes.items()},
            accounts=copy.deepcopy(self.accounts),
            bids=dict(self.bids),
            ram=dict(self.ram),
            receipts=list(self.receipts),
        )


class MemoryStore:
    """
    In-process store used by unit tests and tooling.

    - Arena of maps: one sorted node table per file name
    - transaction() works on a private copy of the containers and publishes it
      on success; other threads keep reading the last committed state
    """

    def __init__(self) -> None:
        self._committed = _MemState()
        self._write_lock = threading.Lock()
        self._local = threading.local()

    @property
    def _st(self) -> _MemState:
        work = getattr(self._local, "work", None)
        return work if work is not None else self._committed

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        if getattr(self._local, "work", None) is not None:
            # Nested use joins the outer transaction.
            yield self
            return

        with self._write_lock:
            work = self._committed.snapshot()
            self._local.work = work
            try:
                yield self
                self._committed = work
            finally:
                self._local.work = None

    # ---- accounting ----

    def _bill(self, payer: str, delta: int) -> None:
        if not payer:
            return
        cur = int(self._st.ram.get(payer, 0)) + int(delta)
        self._st.ram[payer] = max(0, cur)

    def ram_usage(self, payer: str) -> int:
        return int(self._st.ram.get(payer, 0))

    # ---- files ----

    def get_file(self, filename: str) -> Optional[FileRecord]:
        return self._st.files.get(filename)

    def insert_file(self, rec: FileRecord) -> None:
        if rec.filename in self._st.files:
            raise KeyError(f"file exists: {rec.filename}")
        self._st.files[rec.filename] = rec
        self._bill(rec.payer, file_row_bytes())

    def set_file_owner(self, filename: str, owner: Owner) -> None:
        rec = self._st.files[filename]
        self._st.files[filename] = FileRecord(filename=rec.filename, owner=owner, payer=rec.payer)

    def erase_file(self, filename: str) -> None:
        rec = self._st.files.pop(filename)
        self._bill(rec.payer, -file_row_bytes())

    # ---- nodes ----

    def _table(self, filename: str) -> Optional[_NodeTable]:
        return self._st.nodes.get(filename)

    def get_node(self, filename: str, node_id: int) -> Optional[NodeRecord]:
        t = self._table(filename)
        if t is None:
            return None
        return t.rows.get(int(node_id))

    def insert_node(self, filename: str, node: NodeRecord) -> None:
        t = self._st.nodes.setdefault(filename, _NodeTable())
        nid = int(node.id)
        if nid in t.rows:
            raise KeyError(f"node exists: {filename}/{nid}")
        bisect.insort(t.ids, nid)
        t.rows[nid] = node
        self._bill(node.payer, node_row_bytes(node.data))

    def set_node_data(self, filename: str, node_id: int, data: bytes) -> None:
        t = self._st.nodes[filename]
        old = t.rows[int(node_id)]
        t.rows[int(node_id)] = NodeRecord(id=old.id, data=bytes(data), payer=old.payer)
        self._bill(old.payer, len(data) - len(old.data))

    def erase_node(self, filename: str, node_id: int) -> bool:
        t = self._table(filename)
        nid = int(node_id)
        if t is None or nid not in t.rows:
            return False
        old = t.rows.pop(nid)
        i = bisect.bisect_left(t.ids, nid)
        del t.ids[i]
        self._bill(old.payer, -node_row_bytes(old.data))
        if not t.ids:
            del self._st.nodes[filename]
        return True

    def lower_bound(self, filename: str, node_id: int) -> Optional[int]:
        t = self._table(filename)
        if t is None:
            return None
        i = bisect.bisect_left(t.ids, int(node_id))
        if i >= len(t.ids):
            return None
        return t.ids[i]

    def node_ids(self, filename: str) -> List[int]:
        t = self._table(filename)
        return list(t.ids) if t is not None else []

    def clear_nodes(self, filename: str) -> int:
        t = self._st.nodes.pop(filename, None)
        if t is None:
            return 0
        for node in t.rows.values():
            self._bill(node.payer, -node_row_bytes(node.data))
        return len(t.ids)

    # ---- accounts / registry ----

    def account_exists(self, account: str) -> bool:
        return account in self._st.accounts

    def account_keys(self, account: str) -> List[str]:
        acct = self._st.accounts.get(account) or {}
        out: List[str] = []
        for rec in acct.get("keys", []):
            if isinstance(rec, dict) and rec.get("active", True):
                pk = str(rec.get("pubkey") or "").strip()
                if pk and pk not in out:
                    out.append(pk)
        return out

    def account_nonce(self, account: str) -> int:
        acct = self._st.accounts.get(account) or {}
        return int(acct.get("nonce", 0))

    def set_account_nonce(self, account: str, nonce: int) -> None:
        self._st.accounts[account]["nonce"] = int(nonce)

    def put_account(self, account: str, *, keys: List[str]) -> None:
        acct = self._st.accounts.setdefault(account, {"nonce": 0, "keys": []})
        acct["keys"] = [{"pubkey": pk, "active": True} for pk in keys]

    def get_name_bid(self, registry: str, newname: str) -> Optional[NameBid]:
        return self._st.bids.get((registry, newname))

    def put_name_bid(self, registry: str, bid: NameBid) -> None:
        self._st.bids[(registry, bid.newname)] = bid

    # ---- receipts ----

    def append_receipt(self, receipt: Json) -> int:
        rec = dict(receipt)
        rec.setdefault("ts_ms", _now_ms())
        self._st.receipts.append(rec)
        seq = len(self._st.receipts)
        rec["seq"] = seq
        return seq
