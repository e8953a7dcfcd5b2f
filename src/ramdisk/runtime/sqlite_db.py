# src/ramdisk/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ramdisk.ledger.types import FileRecord, NameBid, NodeRecord, Owner, owner_from_json, owner_to_json
from ramdisk.runtime.store import file_row_bytes, node_row_bytes

Json = Dict[str, Any]

# SQLite INTEGER is signed 64-bit; shift uint64 node ids so ordering is preserved.
_ID_SHIFT = 1 << 63


def _sql_id(node_id: int) -> int:
    return int(node_id) - _ID_SHIFT


def _py_id(v: Any) -> int:
    return int(v) + _ID_SHIFT


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    Do not coerce unknown types; persisted structures must fail fast on them.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the ramdisk node runtime.

    Design goals:
      - single durable DB file for contract tables + receipts
      - cross-process safe (SQLite locks)
      - cross-thread safe by never sharing connections

    SQLite allows only one writer at a time. BEGIN IMMEDIATE can transiently
    fail with "database is locked", so write_tx() retries within a deadline.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """PRAGMA synchronous value.

        Defaults:
          - prod        -> FULL
          - dev/testnet -> NORMAL

        Override with RAMDISK_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("RAMDISK_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("RAMDISK_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("RAMDISK_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        allow_non_wal = (os.environ.get("RAMDISK_SQLITE_ALLOW_NON_WAL") or "").strip() in {"1", "true", "TRUE"}
        try:
            row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
            mode = str(row[0]).strip().lower() if row is not None else ""
            if mode and mode != "wal" and not allow_non_wal:
                raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")
        except Exception:
            if not allow_non_wal:
                con.close()
                raise

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("RAMDISK_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                  account TEXT PRIMARY KEY,
                  keys_json TEXT NOT NULL,
                  nonce INTEGER NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )

            # Name-auction registry mirror. Read-only for the contract.
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS name_bids (
                  registry TEXT NOT NULL,
                  newname TEXT NOT NULL,
                  high_bidder TEXT NOT NULL,
                  high_bid INTEGER NOT NULL,
                  last_bid_time_ms INTEGER NOT NULL,
                  PRIMARY KEY (registry, newname)
                );
                """
            )

            # owner NULL == immutable
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS files (
                  filename TEXT PRIMARY KEY,
                  owner TEXT,
                  payer TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS nodes (
                  filename TEXT NOT NULL,
                  node_id INTEGER NOT NULL,
                  data BLOB NOT NULL,
                  payer TEXT NOT NULL,
                  PRIMARY KEY (filename, node_id)
                ) WITHOUT ROWID;
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS ram_usage (
                  payer TEXT PRIMARY KEY,
                  bytes INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS receipts (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  tx_id TEXT NOT NULL,
                  action TEXT NOT NULL,
                  signer TEXT NOT NULL,
                  nonce INTEGER NOT NULL,
                  receipt_json TEXT NOT NULL,
                  ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_receipts_tx_id ON receipts(tx_id);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE until a deadline
          - exponential backoff with jitter
          - then raise (fail closed)
        """
        deadline_ms = max(250, _env_int("RAMDISK_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = max(0.001, float(_env_int("RAMDISK_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("RAMDISK_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
                    time.sleep(sleep_s * (0.5 + random.random()))
                    attempt += 1

            try:
                yield con
                con.execute("COMMIT;")
            except BaseException:
                try:
                    con.execute("ROLLBACK;")
                except sqlite3.Error:
                    pass
                raise


class SqliteStore:
    """Durable ContractStore backed by SqliteDB.

    transaction() holds one write transaction; every store call made inside it
    on the same thread shares that connection, so a failing call rolls back as
    a unit. Calls from other threads, or made outside a transaction, use their
    own connection and only see committed state.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()
        # Open write connection per thread; other threads read committed state.
        self._local = threading.local()

    @property
    def db(self) -> SqliteDB:
        return self._db

    def _tx_con(self) -> Optional[sqlite3.Connection]:
        return getattr(self._local, "con", None)

    @contextmanager
    def transaction(self) -> Iterator["SqliteStore"]:
        if self._tx_con() is not None:
            yield self
            return
        with self._db.write_tx() as con:
            self._local.con = con
            try:
                yield self
            finally:
                self._local.con = None

    @contextmanager
    def _con(self, *, write: bool = False) -> Iterator[sqlite3.Connection]:
        tx_con = self._tx_con()
        if tx_con is not None:
            yield tx_con
            return
        if write:
            with self._db.write_tx() as con:
                yield con
            return
        with self._db.connection() as con:
            yield con

    # ---- accounting ----

    def _bill(self, con: sqlite3.Connection, payer: str, delta: int) -> None:
        if not payer:
            return
        row = con.execute("SELECT bytes FROM ram_usage WHERE payer=?;", (payer,)).fetchone()
        cur = int(row["bytes"]) if row is not None else 0
        con.execute(
            "INSERT INTO ram_usage(payer, bytes) VALUES(?, ?) ON CONFLICT(payer) DO UPDATE SET bytes=excluded.bytes;",
            (payer, max(0, cur + int(delta))),
        )

    def ram_usage(self, payer: str) -> int:
        with self._con() as con:
            row = con.execute("SELECT bytes FROM ram_usage WHERE payer=?;", (payer,)).fetchone()
            return int(row["bytes"]) if row is not None else 0

    # ---- files ----

    def get_file(self, filename: str) -> Optional[FileRecord]:
        with self._con() as con:
            row = con.execute("SELECT filename, owner, payer FROM files WHERE filename=?;", (filename,)).fetchone()
        if row is None:
            return None
        return FileRecord(filename=str(row["filename"]), owner=owner_from_json(row["owner"]), payer=str(row["payer"]))

    def insert_file(self, rec: FileRecord) -> None:
        with self._con(write=True) as con:
            con.execute(
                "INSERT INTO files(filename, owner, payer, created_ts_ms) VALUES(?, ?, ?, ?);",
                (rec.filename, owner_to_json(rec.owner), rec.payer, _now_ms()),
            )
            self._bill(con, rec.payer, file_row_bytes())

    def set_file_owner(self, filename: str, owner: Owner) -> None:
        with self._con(write=True) as con:
            cur = con.execute("UPDATE files SET owner=? WHERE filename=?;", (owner_to_json(owner), filename))
            if cur.rowcount != 1:
                raise KeyError(f"file missing: {filename}")

    def erase_file(self, filename: str) -> None:
        with self._con(write=True) as con:
            row = con.execute("SELECT payer FROM files WHERE filename=?;", (filename,)).fetchone()
            if row is None:
                raise KeyError(f"file missing: {filename}")
            con.execute("DELETE FROM files WHERE filename=?;", (filename,))
            self._bill(con, str(row["payer"]), -file_row_bytes())

    # ---- nodes ----

    def get_node(self, filename: str, node_id: int) -> Optional[NodeRecord]:
        with self._con() as con:
            row = con.execute(
                "SELECT node_id, data, payer FROM nodes WHERE filename=? AND node_id=?;",
                (filename, _sql_id(node_id)),
            ).fetchone()
        if row is None:
            return None
        return NodeRecord(id=_py_id(row["node_id"]), data=bytes(row["data"]), payer=str(row["payer"]))

    def insert_node(self, filename: str, node: NodeRecord) -> None:
        with self._con(write=True) as con:
            con.execute(
                "INSERT INTO nodes(filename, node_id, data, payer) VALUES(?, ?, ?, ?);",
                (filename, _sql_id(node.id), sqlite3.Binary(node.data), node.payer),
            )
            self._bill(con, node.payer, node_row_bytes(node.data))

    def set_node_data(self, filename: str, node_id: int, data: bytes) -> None:
        with self._con(write=True) as con:
            row = con.execute(
                "SELECT length(data) AS n, payer FROM nodes WHERE filename=? AND node_id=?;",
                (filename, _sql_id(node_id)),
            ).fetchone()
            if row is None:
                raise KeyError(f"node missing: {filename}/{node_id}")
            con.execute(
                "UPDATE nodes SET data=? WHERE filename=? AND node_id=?;",
                (sqlite3.Binary(data), filename, _sql_id(node_id)),
            )
            self._bill(con, str(row["payer"]), len(data) - int(row["n"]))

    def erase_node(self, filename: str, node_id: int) -> bool:
        with self._con(write=True) as con:
            row = con.execute(
                "SELECT length(data) AS n, payer FROM nodes WHERE filename=? AND node_id=?;",
                (filename, _sql_id(node_id)),
            ).fetchone()
            if row is None:
                return False
            con.execute("DELETE FROM nodes WHERE filename=? AND node_id=?;", (filename, _sql_id(node_id)))
            self._bill(con, str(row["payer"]), -(node_row_bytes(b"") + int(row["n"])))
            return True

    def lower_bound(self, filename: str, node_id: int) -> Optional[int]:
        with self._con() as con:
            row = con.execute(
                "SELECT node_id FROM nodes WHERE filename=? AND node_id>=? ORDER BY node_id ASC LIMIT 1;",
                (filename, _sql_id(node_id)),
            ).fetchone()
        return _py_id(row["node_id"]) if row is not None else None

    def node_ids(self, filename: str) -> List[int]:
        with self._con() as con:
            rows = con.execute(
                "SELECT node_id FROM nodes WHERE filename=? ORDER BY node_id ASC;", (filename,)
            ).fetchall()
        return [_py_id(r["node_id"]) for r in rows]

    def clear_nodes(self, filename: str) -> int:
        with self._con(write=True) as con:
            rows = con.execute(
                "SELECT payer, COUNT(*) AS c, SUM(length(data)) AS n FROM nodes WHERE filename=? GROUP BY payer;",
                (filename,),
            ).fetchall()
            con.execute("DELETE FROM nodes WHERE filename=?;", (filename,))
            total = 0
            for r in rows:
                c = int(r["c"])
                total += c
                self._bill(con, str(r["payer"]), -(c * node_row_bytes(b"") + int(r["n"] or 0)))
            return total

    # ---- accounts / registry ----

    def account_exists(self, account: str) -> bool:
        with self._con() as con:
            return con.execute("SELECT 1 FROM accounts WHERE account=?;", (account,)).fetchone() is not None

    def account_keys(self, account: str) -> List[str]:
        with self._con() as con:
            row = con.execute("SELECT keys_json FROM accounts WHERE account=?;", (account,)).fetchone()
        if row is None:
            return []
        keys = json.loads(str(row["keys_json"]))
        out: List[str] = []
        for rec in keys if isinstance(keys, list) else []:
            if isinstance(rec, dict) and rec.get("active", True):
                pk = str(rec.get("pubkey") or "").strip()
                if pk and pk not in out:
                    out.append(pk)
        return out

    def account_nonce(self, account: str) -> int:
        with self._con() as con:
            row = con.execute("SELECT nonce FROM accounts WHERE account=?;", (account,)).fetchone()
        return int(row["nonce"]) if row is not None else 0

    def set_account_nonce(self, account: str, nonce: int) -> None:
        with self._con(write=True) as con:
            con.execute("UPDATE accounts SET nonce=? WHERE account=?;", (int(nonce), account))

    def put_account(self, account: str, *, keys: List[str]) -> None:
        keys_json = _canon_json([{"pubkey": pk, "active": True} for pk in keys])
        with self._con(write=True) as con:
            con.execute(
                """
                INSERT INTO accounts(account, keys_json, nonce, created_ts_ms) VALUES(?, ?, 0, ?)
                ON CONFLICT(account) DO UPDATE SET keys_json=excluded.keys_json;
                """,
                (account, keys_json, _now_ms()),
            )

    def get_name_bid(self, registry: str, newname: str) -> Optional[NameBid]:
        with self._con() as con:
            row = con.execute(
                "SELECT newname, high_bidder, high_bid, last_bid_time_ms FROM name_bids WHERE registry=? AND newname=?;",
                (registry, newname),
            ).fetchone()
        if row is None:
            return None
        return NameBid(
            newname=str(row["newname"]),
            high_bidder=str(row["high_bidder"]),
            high_bid=int(row["high_bid"]),
            last_bid_time_ms=int(row["last_bid_time_ms"]),
        )

    def put_name_bid(self, registry: str, bid: NameBid) -> None:
        with self._con(write=True) as con:
            con.execute(
                """
                INSERT INTO name_bids(registry, newname, high_bidder, high_bid, last_bid_time_ms)
                VALUES(?, ?, ?, ?, ?)
                ON CONFLICT(registry, newname) DO UPDATE SET
                  high_bidder=excluded.high_bidder,
                  high_bid=excluded.high_bid,
                  last_bid_time_ms=excluded.last_bid_time_ms;
                """,
                (registry, bid.newname, bid.high_bidder, int(bid.high_bid), int(bid.last_bid_time_ms)),
            )

    # ---- receipts ----

    def append_receipt(self, receipt: Json) -> int:
        with self._con(write=True) as con:
            cur = con.execute(
                "INSERT INTO receipts(tx_id, action, signer, nonce, receipt_json, ts_ms) VALUES(?, ?, ?, ?, ?, ?);",
                (
                    str(receipt.get("tx_id") or ""),
                    str(receipt.get("action") or ""),
                    str(receipt.get("signer") or ""),
                    int(receipt.get("nonce") or 0),
                    _canon_json(receipt),
                    _now_ms(),
                ),
            )
            return int(cur.lastrowid or 0)

    def receipts(self, *, limit: int = 50) -> List[Json]:
        with self._con() as con:
            rows = con.execute(
                "SELECT seq, receipt_json FROM receipts ORDER BY seq DESC LIMIT ?;", (max(1, int(limit)),)
            ).fetchall()
        out: List[Json] = []
        for r in rows:
            rec = json.loads(str(r["receipt_json"]))
            rec["seq"] = int(r["seq"])
            out.append(rec)
        return out

    # ---- meta ----

    def get_meta(self, key: str) -> Optional[str]:
        with self._con() as con:
            row = con.execute("SELECT value FROM meta WHERE key=? LIMIT 1;", (str(key),)).fetchone()
            return str(row["value"]) if row is not None else None

    def set_meta(self, key: str, value: str) -> None:
        with self._con(write=True) as con:
            con.execute(
                "INSERT INTO meta(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                (str(key), str(value)),
            )
