from __future__ import annotations

import base64

import pytest

from ramdisk.crypto.sig import (
    canonical_tx_message,
    decode_bytes,
    sign_tx_envelope_dict,
    verify_ed25519_signature,
)
from ramdisk.runtime.sigverify import SignatureAuthenticator
from ramdisk.runtime.store import MemoryStore
from ramdisk.runtime.tx_admission_types import TxEnvelope
from ramdisk.testing.sigtools import deterministic_ed25519_keypair

CHAIN_ID = "sig-test"
SEED_HEX = "11" * 32


def _pubkey_for_seed() -> str:
    from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
    from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

    sk = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(SEED_HEX))
    return sk.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()


def test_decode_bytes_hex_and_base64() -> None:
    assert decode_bytes("00ff") == b"\x00\xff"
    assert decode_bytes(base64.b64encode(b"\x01\x02\x03").decode()) == b"\x01\x02\x03"
    assert decode_bytes(base64.urlsafe_b64encode(b"\xfb\xff").decode().rstrip("=")) == b"\xfb\xff"
    with pytest.raises(ValueError):
        decode_bytes("")
    with pytest.raises(ValueError):
        decode_bytes("not base64 !!")


def test_canonical_message_is_key_order_independent() -> None:
    a = canonical_tx_message(chain_id="c", action="create", signer="alice", nonce=1, payload={"a": 1, "b": 2})
    b = canonical_tx_message(chain_id="c", action="create", signer="alice", nonce=1, payload={"b": 2, "a": 1})
    assert a == b
    assert a != canonical_tx_message(chain_id="d", action="create", signer="alice", nonce=1, payload={"a": 1, "b": 2})


@pytest.mark.parametrize("encoding", ["hex", "b64"])
def test_envelope_signature_verifies(encoding: str) -> None:
    tx = {"action": "create", "signer": "alice", "nonce": 1, "payload": {"owner": "alice", "filename": "alice"}}
    signed = sign_tx_envelope_dict(tx=tx, privkey=SEED_HEX, chain_id=CHAIN_ID, encoding=encoding)

    msg = canonical_tx_message(chain_id=CHAIN_ID, action="create", signer="alice", nonce=1, payload=tx["payload"])
    assert verify_ed25519_signature(message=msg, sig=signed["sig"], pubkey=_pubkey_for_seed())
    assert not verify_ed25519_signature(message=msg + b"x", sig=signed["sig"], pubkey=_pubkey_for_seed())


def test_signature_authenticator_policy() -> None:
    store = MemoryStore()
    with store.transaction():
        store.put_account("alice", keys=[_pubkey_for_seed()])
        store.put_account("nokeys", keys=[])

    tx = {"action": "create", "signer": "alice", "nonce": 1, "payload": {"owner": "alice", "filename": "alice"}}
    env = TxEnvelope.from_json(sign_tx_envelope_dict(tx=tx, privkey=SEED_HEX, chain_id=CHAIN_ID))

    auth = SignatureAuthenticator(store=store, env=env, chain_id=CHAIN_ID)
    assert auth.authenticate("alice") is True
    assert auth.authenticate("bob") is False
    assert auth.authenticate(None) is False

    wrong_chain = SignatureAuthenticator(store=store, env=env, chain_id="other-chain")
    assert wrong_chain.authenticate("alice") is False

    unsigned = TxEnvelope(action="create", signer="nokeys", nonce=1, payload={})
    assert SignatureAuthenticator(store=store, env=unsigned, chain_id=CHAIN_ID).authenticate("nokeys") is False


def test_deterministic_test_keys_are_stable() -> None:
    assert deterministic_ed25519_keypair(label="alice")[0] == deterministic_ed25519_keypair(label="alice")[0]
    assert deterministic_ed25519_keypair(label="alice")[0] != deterministic_ed25519_keypair(label="bob")[0]
