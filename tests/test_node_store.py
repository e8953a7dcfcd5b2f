from __future__ import annotations

from typing import Any

import pytest

from ramdisk.ledger.types import UINT64_MAX
from ramdisk.runtime.domain_apply import ApplyError, apply_tx_atomic
from ramdisk.runtime.errors import INVALID_ARGUMENT, NOT_FOUND
from ramdisk.runtime.sigverify import SignerAuthenticator
from ramdisk.runtime.store import file_row_bytes, node_row_bytes

FNAME = "abcdefghijkl"


def _call(store, signer: str, action: str, **payload: Any):
    env = {"action": action, "signer": signer, "nonce": 1, "payload": payload}
    return apply_tx_atomic(store, env, auth=SignerAuthenticator(signer))


@pytest.fixture()
def file_store(store):
    with store.transaction():
        store.put_account("alice", keys=[])
    _call(store, "alice", "create", owner="alice", filename=FNAME)
    return store


def test_setnode_creates_then_overwrites(file_store) -> None:
    out = _call(file_store, "alice", "setnode", owner="alice", filename=FNAME, nodeid=42, data="0102")
    assert out["created"] is True
    assert out["size"] == 2

    out2 = _call(file_store, "alice", "setnode", owner="alice", filename=FNAME, nodeid=42, data="ffeedd")
    assert out2["created"] is False

    node = file_store.get_node(FNAME, 42)
    assert node.data == b"\xff\xee\xdd"
    assert node.payer == "alice"
    assert file_store.node_ids(FNAME) == [42]


def test_empty_node_is_a_real_node(file_store) -> None:
    _call(file_store, "alice", "setnode", owner="alice", filename=FNAME, nodeid=0, data="")
    node = file_store.get_node(FNAME, 0)
    assert node is not None
    assert node.data == b""


def test_node_ids_are_ordered_and_sparse(file_store) -> None:
    for nid in [UINT64_MAX, 5, 1 << 40, 0]:
        _call(file_store, "alice", "setnode", owner="alice", filename=FNAME, nodeid=nid, data="01")
    assert file_store.node_ids(FNAME) == [0, 5, 1 << 40, UINT64_MAX]
    assert file_store.get_node(FNAME, UINT64_MAX).data == b"\x01"


def test_delnode_missing_is_success(file_store) -> None:
    out = _call(file_store, "alice", "delnode", owner="alice", filename=FNAME, nodeid=9)
    assert out["deleted"] is False

    _call(file_store, "alice", "setnode", owner="alice", filename=FNAME, nodeid=9, data="aa")
    out2 = _call(file_store, "alice", "delnode", owner="alice", filename=FNAME, nodeid=9)
    assert out2["deleted"] is True
    out3 = _call(file_store, "alice", "delnode", owner="alice", filename=FNAME, nodeid=9)
    assert out3["deleted"] is False
    assert file_store.get_node(FNAME, 9) is None


def test_node_on_missing_file_is_not_found(file_store) -> None:
    with pytest.raises(ApplyError) as e:
        _call(file_store, "alice", "setnode", owner="alice", filename="zzzzzzzzzzzz", nodeid=1, data="00")
    assert e.value.code == NOT_FOUND


@pytest.mark.parametrize(
    "payload",
    [
        {"nodeid": -1, "data": "00"},
        {"nodeid": UINT64_MAX + 1, "data": "00"},
        {"nodeid": True, "data": "00"},
        {"nodeid": "1", "data": "00"},
        {"nodeid": 1, "data": "abc"},
        {"nodeid": 1, "data": "zz"},
    ],
)
def test_setnode_payload_validation(file_store, payload) -> None:
    with pytest.raises(ApplyError) as e:
        _call(file_store, "alice", "setnode", owner="alice", filename=FNAME, **payload)
    assert e.value.code == INVALID_ARGUMENT
    assert file_store.node_ids(FNAME) == []


def test_ram_is_billed_and_refunded(file_store) -> None:
    base = file_row_bytes()
    assert file_store.ram_usage("alice") == base

    _call(file_store, "alice", "setnode", owner="alice", filename=FNAME, nodeid=1, data="00" * 10)
    assert file_store.ram_usage("alice") == base + node_row_bytes(b"\x00" * 10)

    _call(file_store, "alice", "setnode", owner="alice", filename=FNAME, nodeid=1, data="00" * 4)
    assert file_store.ram_usage("alice") == base + node_row_bytes(b"\x00" * 4)

    _call(file_store, "alice", "delnode", owner="alice", filename=FNAME, nodeid=1)
    assert file_store.ram_usage("alice") == base

    _call(file_store, "alice", "del", owner="alice", filename=FNAME)
    assert file_store.ram_usage("alice") == 0


def test_immutable_nodes_stay_billed_to_creator(file_store) -> None:
    _call(file_store, "alice", "setnode", owner="alice", filename=FNAME, nodeid=1, data="0000")
    before = file_store.ram_usage("alice")
    _call(file_store, "alice", "setimmutable", owner="alice", filename=FNAME)
    assert file_store.ram_usage("alice") == before
