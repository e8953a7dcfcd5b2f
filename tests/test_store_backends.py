from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

import pytest

from ramdisk.ledger.types import IMMUTABLE, UINT64_MAX, Account, FileRecord, NameBid, NodeRecord
from ramdisk.runtime.sqlite_db import SqliteDB, SqliteStore
from ramdisk.runtime.store import ContractStore, MemoryStore, file_row_bytes, next_node_id, node_row_bytes


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    return row[0]


def test_backends_satisfy_protocol(store) -> None:
    assert isinstance(store, ContractStore)


def test_failed_transaction_rolls_back_everything(store) -> None:
    with store.transaction():
        store.put_account("alice", keys=[])
        store.insert_file(FileRecord(filename="keep", owner=Account("alice"), payer="alice"))

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert_file(FileRecord(filename="gone", owner=Account("alice"), payer="alice"))
            store.insert_node("keep", NodeRecord(id=1, data=b"xyz", payer="alice"))
            store.set_file_owner("keep", IMMUTABLE)
            store.set_account_nonce("alice", 9)
            raise RuntimeError("boom")

    assert store.get_file("gone") is None
    assert store.get_file("keep").owner == Account("alice")
    assert store.node_ids("keep") == []
    assert store.account_nonce("alice") == 0
    assert store.ram_usage("alice") == file_row_bytes()


def _read_on_other_thread(fn):
    out: list = []
    t = threading.Thread(target=lambda: out.append(fn()))
    t.start()
    t.join(timeout=10)
    assert out, "reader thread did not finish"
    return out[0]


def test_other_threads_see_only_committed_state(store) -> None:
    with store.transaction():
        store.insert_file(FileRecord(filename="keep", owner=Account("alice"), payer="alice"))

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert_file(FileRecord(filename="abcdefghijkl", owner=Account("alice"), payer="alice"))
            store.erase_file("keep")
            assert store.get_file("abcdefghijkl") is not None
            assert _read_on_other_thread(lambda: store.get_file("abcdefghijkl")) is None
            assert _read_on_other_thread(lambda: store.get_file("keep")) is not None
            assert _read_on_other_thread(lambda: store.ram_usage("alice")) == file_row_bytes()
            raise RuntimeError("call failed")

    assert store.get_file("abcdefghijkl") is None
    assert store.get_file("keep") is not None


def test_committed_writes_become_visible_to_other_threads(store) -> None:
    with store.transaction():
        store.insert_node("f", NodeRecord(id=7, data=b"z", payer="p"))
        assert _read_on_other_thread(lambda: store.node_ids("f")) == []
    assert _read_on_other_thread(lambda: store.node_ids("f")) == [7]


def test_nested_transaction_joins_outer(store) -> None:
    with pytest.raises(RuntimeError):
        with store.transaction():
            with store.transaction():
                store.put_account("bob", keys=["aa"])
            raise RuntimeError("outer fails")
    assert not store.account_exists("bob")


def test_node_scopes_are_isolated_per_file(store) -> None:
    with store.transaction():
        store.insert_node("one", NodeRecord(id=1, data=b"a", payer="p"))
        store.insert_node("two", NodeRecord(id=1, data=b"b", payer="p"))
        assert store.clear_nodes("one") == 1

    assert store.get_node("one", 1) is None
    assert store.get_node("two", 1).data == b"b"


def test_lower_bound_and_next_across_uint64(store) -> None:
    ids = [0, 1, (1 << 63) - 1, 1 << 63, UINT64_MAX]
    with store.transaction():
        for nid in reversed(ids):
            store.insert_node("f", NodeRecord(id=nid, data=b"", payer="p"))

    assert store.node_ids("f") == ids
    assert store.lower_bound("f", 2) == (1 << 63) - 1
    assert store.lower_bound("f", (1 << 63) + 1) == UINT64_MAX
    assert next_node_id(store, "f", 1 << 63) == UINT64_MAX
    assert next_node_id(store, "f", UINT64_MAX) is None
    assert store.lower_bound("missing", 0) is None


def test_overwrite_bills_original_payer(store) -> None:
    with store.transaction():
        store.insert_node("f", NodeRecord(id=1, data=b"12345", payer="alice"))
        store.set_node_data("f", 1, b"1")
    assert store.ram_usage("alice") == node_row_bytes(b"1")

    with store.transaction():
        assert store.erase_node("f", 1) is True
        assert store.erase_node("f", 1) is False
    assert store.ram_usage("alice") == 0


def test_accounts_and_name_bids(store) -> None:
    with store.transaction():
        store.put_account("alice", keys=["k1", "k2"])
        store.set_account_nonce("alice", 3)
        store.put_account("alice", keys=["k3"])
        store.put_name_bid("eosio", NameBid(newname="gem", high_bidder="bob", high_bid=7, last_bid_time_ms=11))

    assert store.account_keys("alice") == ["k3"]
    # Re-keying keeps the nonce.
    assert store.account_nonce("alice") == 3
    assert store.account_keys("nobody") == []

    bid = store.get_name_bid("eosio", "gem")
    assert bid == NameBid(newname="gem", high_bidder="bob", high_bid=7, last_bid_time_ms=11)
    assert bid.is_open
    assert store.get_name_bid("other", "gem") is None


def test_receipts_get_increasing_seq(store) -> None:
    with store.transaction():
        s1 = store.append_receipt({"tx_id": "a", "action": "create", "signer": "alice", "nonce": 1})
        s2 = store.append_receipt({"tx_id": "b", "action": "create", "signer": "alice", "nonce": 2})
    assert s2 == s1 + 1


def test_memory_store_snapshot_is_independent() -> None:
    s = MemoryStore()
    with s.transaction():
        s.insert_node("f", NodeRecord(id=1, data=b"a", payer="p"))
    with pytest.raises(ValueError):
        with s.transaction():
            s.set_node_data("f", 1, b"changed")
            s.insert_node("f", NodeRecord(id=2, data=b"b", payer="p"))
            raise ValueError("x")
    assert s.get_node("f", 1).data == b"a"
    assert s.node_ids("f") == [1]


def test_sqlite_store_persists_across_reopen(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAMDISK_MODE", "dev")
    path = str(tmp_path / "ramdisk.db")

    s1 = SqliteStore(db=SqliteDB(path=path))
    with s1.transaction():
        s1.insert_file(FileRecord(filename="f", owner=IMMUTABLE, payer="alice"))
        s1.insert_node("f", NodeRecord(id=UINT64_MAX, data=b"\x00\xff", payer="alice"))
    s1.set_meta("chain_id", "c1")

    s2 = SqliteStore(db=SqliteDB(path=path))
    rec = s2.get_file("f")
    assert rec.immutable
    assert s2.get_node("f", UINT64_MAX).data == b"\x00\xff"
    assert s2.get_meta("chain_id") == "c1"
    assert s2.get_meta("missing") is None


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAMDISK_MODE", "prod")
    monkeypatch.delenv("RAMDISK_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("RAMDISK_SQLITE_BUSY_TIMEOUT_MS", "1234")

    db = SqliteDB(path=str(tmp_path / "ramdisk.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"
        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2
        assert int(_pragma(con, "foreign_keys")) == 1
        assert int(_pragma(con, "busy_timeout")) == 1234


def test_sqlite_synchronous_normal_outside_prod(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAMDISK_MODE", "dev")
    monkeypatch.delenv("RAMDISK_SQLITE_SYNCHRONOUS", raising=False)

    db = SqliteDB(path=str(tmp_path / "ramdisk.db"))
    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 1
