# src/ramdisk/runtime/sigverify.py
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ramdisk.crypto.sig import canonical_tx_message, verify_ed25519_signature
from ramdisk.runtime.store import ContractStore
from ramdisk.runtime.tx_admission_types import TxEnvelope


@runtime_checkable
class Authenticator(Protocol):
    """Proves that the current call is authorized by `candidate`.

    The contract only ever asks one question: "did this account sign the
    call?". Anything that is not an account name (e.g. the Immutable owner)
    must answer False.
    """

    def authenticate(self, candidate: Any) -> bool: ...


class SignatureAuthenticator:
    """Ed25519 envelope authentication against the signer's active keys.

    Policy:
      - candidate must be a non-empty string equal to env.signer
      - if require_signatures is False (dev only), that is enough
      - otherwise env.sig must verify against one of the candidate's active keys
      - no keys -> fail closed
    """

    def __init__(
        self,
        *,
        store: ContractStore,
        env: TxEnvelope,
        chain_id: str,
        require_signatures: bool = True,
    ) -> None:
        self._store = store
        self._env = env
        self._chain_id = str(chain_id)
        self._require_signatures = bool(require_signatures)
        self._verified: dict[str, bool] = {}

    def authenticate(self, candidate: Any) -> bool:
        if not isinstance(candidate, str) or not candidate.strip():
            return False
        if candidate != self._env.signer:
            return False
        if not self._require_signatures:
            return True

        hit = self._verified.get(candidate)
        if hit is not None:
            return hit

        ok = self._verify(candidate)
        self._verified[candidate] = ok
        return ok

    def _verify(self, candidate: str) -> bool:
        sig = self._env.sig
        if not isinstance(sig, str) or not sig.strip():
            return False

        keys = self._store.account_keys(candidate)
        if not keys:
            return False

        msg = canonical_tx_message(
            chain_id=self._chain_id,
            action=self._env.action,
            signer=self._env.signer,
            nonce=self._env.nonce,
            payload=self._env.payload,
        )
        for pk in keys:
            if verify_ed25519_signature(message=msg, sig=sig, pubkey=pk):
                return True
        return False


class SignerAuthenticator:
    """Trusts the envelope signer as-is.

    Used by embedded callers that already authenticated the request
    (and by unit tests of pure contract semantics).
    """

    def __init__(self, signer: str) -> None:
        self._signer = str(signer or "").strip()

    def authenticate(self, candidate: Any) -> bool:
        return isinstance(candidate, str) and bool(self._signer) and candidate == self._signer
