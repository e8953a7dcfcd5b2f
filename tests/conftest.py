from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "ramdisk" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path, monkeypatch):
    """Each contract test runs once per storage backend."""
    from ramdisk.runtime.sqlite_db import SqliteDB, SqliteStore
    from ramdisk.runtime.store import MemoryStore

    if request.param == "memory":
        return MemoryStore()

    monkeypatch.setenv("RAMDISK_MODE", "dev")
    return SqliteStore(db=SqliteDB(path=str(tmp_path / "ramdisk.db")))
