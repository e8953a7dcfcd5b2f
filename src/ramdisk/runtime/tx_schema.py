from __future__ import annotations

"""Action payload schemas.

Every contract action has a strict payload model (unknown keys rejected).
Admission validates payloads early; the apply layer parses them again so
apply_tx() stays safe when called directly by tests and tools.

Field conventions:
  - owner / filename are ledger names in text form (normalized, trailing dots
    dropped); the filename length rule (1..12) belongs to `create`
  - node ids and counts are uint64 JSON integers (no bools, no strings)
  - node data is a hex string; "" is an empty node
"""

import re
from typing import Annotated, Any, Dict, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ramdisk.ledger.names import normalize_name
from ramdisk.ledger.types import UINT64_MAX
from ramdisk.runtime.errors import INVALID_ARGUMENT, ApplyError

Json = Dict[str, Any]

Uint64 = Annotated[int, Field(strict=True, ge=0, le=UINT64_MAX)]

_HEX_RE = re.compile(r"^(?:[0-9a-fA-F]{2})*$")


class _StrictModel(BaseModel):
    """Strict model: reject unknown keys."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class FilePayload(_StrictModel):
    owner: str
    filename: str

    @field_validator("owner")
    @classmethod
    def _owner_name(cls, v: str) -> str:
        name = normalize_name(v)
        if not name:
            raise ValueError("owner must be a non-empty account name")
        return name

    @field_validator("filename")
    @classmethod
    def _filename_name(cls, v: str) -> str:
        return normalize_name(v)


class NodePayload(FilePayload):
    nodeid: Uint64


class SetNodePayload(NodePayload):
    data: str = ""

    @field_validator("data")
    @classmethod
    def _hex_data(cls, v: str) -> str:
        s = v.strip()
        if not _HEX_RE.match(s):
            raise ValueError("data must be an even-length hex string")
        return s.lower()

    @property
    def data_bytes(self) -> bytes:
        return bytes.fromhex(self.data)


class DelNodesPayload(FilePayload):
    startid: Uint64
    endid: Uint64


class DelNodecPayload(FilePayload):
    startid: Uint64
    count: Uint64


PAYLOAD_SCHEMAS: Dict[str, Type[_StrictModel]] = {
    "create": FilePayload,
    "reset": FilePayload,
    "del": FilePayload,
    "setimmutable": FilePayload,
    "setnode": SetNodePayload,
    "delnode": NodePayload,
    "delnodes": DelNodesPayload,
    "delnodec": DelNodecPayload,
}

SUPPORTED_ACTIONS = frozenset(PAYLOAD_SCHEMAS)


def parse_payload(action: str, payload: Any) -> Any:
    """Parse an action payload into its model. Raises ApplyError(invalid_argument)."""
    a = str(action or "").strip().lower()
    model = PAYLOAD_SCHEMAS.get(a)
    if model is None:
        raise ApplyError(INVALID_ARGUMENT, "unknown_action", {"action": a})
    if not isinstance(payload, dict):
        raise ApplyError(INVALID_ARGUMENT, "payload_must_be_object", {"action": a})
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        raise ApplyError(
            INVALID_ARGUMENT,
            "schema_validation_failed",
            {"action": a, "errors": [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in errors]},
        ) from e
