from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import pytest

from ramdisk.runtime.chain_config import default_chain_config, with_overrides
from ramdisk.runtime.executor import ExecutorError, RamdiskExecutor
from ramdisk.runtime.store import file_row_bytes
from ramdisk.testing.sigtools import deterministic_ed25519_keypair, ensure_account_has_test_key, sign_tx_dict

CHAIN_ID = "ramdisk-test"


def _cfg(tmp_path: Path, **over: Any):
    return with_overrides(default_chain_config(), **{"chain_id": CHAIN_ID, "db_path": str(tmp_path / "ramdisk.db"), **over})


def _signed(action: str, signer: str, nonce: int, label: str | None = None, **payload: Any) -> dict:
    tx = {"action": action, "signer": signer, "nonce": nonce, "payload": payload}
    return sign_tx_dict(tx, chain_id=CHAIN_ID, label=label)


@pytest.fixture()
def ex(tmp_path: Path) -> RamdiskExecutor:
    e = RamdiskExecutor(cfg=_cfg(tmp_path))
    ensure_account_has_test_key(e.store, account="alice")
    ensure_account_has_test_key(e.store, account="bob")
    return e


def test_signed_call_applies_and_consumes_nonce(ex: RamdiskExecutor) -> None:
    res = ex.submit_tx(_signed("create", "alice", 1, owner="alice", filename="alice"))
    assert res["ok"] is True, res
    assert res["seq"] == 1
    assert len(res["tx_id"]) == 64
    assert res["result"]["naming"] == "suffix_account"

    assert ex.account_nonce("alice") == 1
    assert ex.get_file("alice") == {"filename": "alice", "owner": "alice", "immutable": False, "payer": "alice"}
    assert ex.ram_usage("alice") == file_row_bytes()

    receipts = ex.store.receipts(limit=5)
    assert receipts[0]["tx_id"] == res["tx_id"]
    assert receipts[0]["seq"] == 1
    assert receipts[0]["result"]["applied"] == "create"


def test_node_round_trip_through_executor(ex: RamdiskExecutor) -> None:
    assert ex.submit_tx(_signed("create", "alice", 1, owner="alice", filename="alice"))["ok"]
    res = ex.submit_tx(_signed("setnode", "alice", 2, owner="alice", filename="alice", nodeid=3, data="cafe"))
    assert res["ok"] is True, res

    assert ex.node_ids("alice") == [3]
    node = ex.get_node("alice", 3)
    assert node["data"] == "cafe"
    assert node["size"] == 2


def test_wrong_key_is_permission_denied_and_keeps_nonce(ex: RamdiskExecutor) -> None:
    forged = _signed("create", "alice", 1, label="mallory", owner="alice", filename="alice")
    res = ex.submit_tx(forged)
    assert res["ok"] is False
    assert res["error"] == "permission_denied"
    assert ex.account_nonce("alice") == 0
    assert ex.get_file("alice") is None

    assert ex.submit_tx(_signed("create", "alice", 1, owner="alice", filename="alice"))["ok"]


def test_signing_for_another_owner_is_permission_denied(ex: RamdiskExecutor) -> None:
    res = ex.submit_tx(_signed("create", "alice", 1, owner="bob", filename="bob"))
    assert res["error"] == "permission_denied"


def test_tampered_payload_fails_signature(ex: RamdiskExecutor) -> None:
    tx = _signed("create", "alice", 1, owner="alice", filename="alice")
    tx["payload"] = {"owner": "alice", "filename": "data.alice"}
    res = ex.submit_tx(tx)
    assert res["error"] == "permission_denied"


def test_contract_failure_keeps_nonce(ex: RamdiskExecutor) -> None:
    assert ex.submit_tx(_signed("create", "alice", 1, owner="alice", filename="alice"))["ok"]
    res = ex.submit_tx(_signed("create", "alice", 2, owner="alice", filename="alice"))
    assert res["error"] == "already_exists"
    assert ex.account_nonce("alice") == 1


def test_rejections_are_logged_as_warnings(ex: RamdiskExecutor, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="ramdisk.executor"):
        assert ex.submit_tx(_signed("create", "alice", 1, owner="alice", filename="alice"))["ok"]
        assert ex.submit_tx(_signed("create", "alice", 2, owner="alice", filename="alice"))["ok"] is False

    events = [(r.levelno, json.loads(r.getMessage())["event"]) for r in caplog.records if r.name == "ramdisk.executor"]
    assert events == [(logging.INFO, "tx_applied"), (logging.WARNING, "tx_rejected")]


def test_admission_rejects_replay_and_unknown_signer(ex: RamdiskExecutor) -> None:
    tx = _signed("create", "alice", 1, owner="alice", filename="alice")
    assert ex.submit_tx(tx)["ok"]

    replay = ex.submit_tx(tx)
    assert replay["error"] == "bad_nonce"
    assert replay["details"] == {"expected": 2, "got": 1}

    res = ex.submit_tx(_signed("create", "zed", 1, owner="zed", filename="zed"))
    assert res["error"] == "unknown_signer"


def test_non_object_envelope(ex: RamdiskExecutor) -> None:
    assert ex.submit_tx([1, 2])["error"] == "bad_shape"  # type: ignore[arg-type]


def test_unsigned_calls_allowed_when_signatures_disabled(tmp_path: Path) -> None:
    e = RamdiskExecutor(cfg=_cfg(tmp_path, mode="dev", require_signatures=False))
    ensure_account_has_test_key(e.store, account="alice")
    tx = {"action": "create", "signer": "alice", "nonce": 1, "payload": {"owner": "alice", "filename": "alice"}}
    assert e.submit_tx(tx)["ok"] is True

    # Signer must still match the owner being acted for.
    tx2 = {"action": "create", "signer": "alice", "nonce": 2, "payload": {"owner": "bob", "filename": "bob"}}
    assert e.submit_tx(tx2)["error"] == "permission_denied"


def test_genesis_seeds_accounts_and_bids(tmp_path: Path) -> None:
    alice_pk, _ = deterministic_ed25519_keypair(label="alice")
    carol_pk, _ = deterministic_ed25519_keypair(label="carol")
    gen = tmp_path / "genesis.json"
    gen.write_text(
        json.dumps(
            {
                "chain_id": CHAIN_ID,
                "accounts": [{"account": "alice", "pubkeys": [alice_pk]}, {"account": "carol", "pubkeys": [carol_pk]}],
                "name_bids": [
                    {"newname": "gem", "high_bidder": "carol", "high_bid": 100, "last_bid_time_ms": 1},
                    {"newname": "won", "high_bidder": "carol", "high_bid": -1, "last_bid_time_ms": 1},
                ],
            }
        ),
        encoding="utf-8",
    )
    e = RamdiskExecutor(cfg=_cfg(tmp_path, genesis_path=str(gen)))

    res = e.submit_tx(_signed("create", "carol", 1, owner="carol", filename="gem"))
    assert res["error"] == "auction_open"

    res = e.submit_tx(_signed("create", "alice", 1, owner="alice", filename="won"))
    assert res["error"] == "suffix_not_owned"

    res = e.submit_tx(_signed("create", "carol", 1, owner="carol", filename="data.won"))
    assert res["ok"] is True, res
    assert res["result"]["naming"] == "bid_winner"


def test_genesis_chain_id_mismatch_refuses_start(tmp_path: Path) -> None:
    gen = tmp_path / "genesis.json"
    gen.write_text(json.dumps({"chain_id": "other", "accounts": []}), encoding="utf-8")
    with pytest.raises(ExecutorError):
        RamdiskExecutor(cfg=_cfg(tmp_path, genesis_path=str(gen)))


def test_db_chain_id_mismatch_refuses_start(tmp_path: Path) -> None:
    RamdiskExecutor(cfg=_cfg(tmp_path))
    with pytest.raises(ExecutorError):
        RamdiskExecutor(cfg=_cfg(tmp_path, chain_id="another-chain"))


def test_state_survives_restart(tmp_path: Path) -> None:
    e1 = RamdiskExecutor(cfg=_cfg(tmp_path))
    ensure_account_has_test_key(e1.store, account="alice")
    assert e1.submit_tx(_signed("create", "alice", 1, owner="alice", filename="alice"))["ok"]

    e2 = RamdiskExecutor(cfg=_cfg(tmp_path))
    assert e2.get_file("alice") is not None
    assert e2.account_nonce("alice") == 1


def test_read_helpers_tolerate_bad_names(ex: RamdiskExecutor) -> None:
    assert ex.get_file("NOT-A-NAME") is None
    assert ex.node_ids("NOT-A-NAME") == []
    assert ex.get_node("NOT-A-NAME", 1) is None
    assert ex.ram_usage("NOT-A-NAME") == 0
