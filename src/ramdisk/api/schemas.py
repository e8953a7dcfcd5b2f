from __future__ import annotations

"""Pydantic request schemas for the public API.

Keep this module intentionally small and stable.

Note:
  The canonical per-action payload schemas live in ramdisk.runtime.tx_schema.
  These API schemas exist only for HTTP input validation and UX stability.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    action: str = Field(..., description="Contract action, e.g. createfile")
    signer: str = Field(..., description="Account authorizing the call")
    nonce: int = Field(..., description="Signer nonce; must be the account's current nonce + 1")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Action arguments")
    sig: str = Field(default="", description="Ed25519 signature over the canonical call message (hex or base64)")

    model_config = {"extra": "forbid"}

    def to_envelope(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "signer": self.signer,
            "nonce": self.nonce,
            "payload": dict(self.payload),
            "sig": self.sig,
        }
