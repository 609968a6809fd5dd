"""
Recovery data models.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from lnsweep.constants import TAPROOT_LEAF_VERSION

OUTPOINT_PATTERN = re.compile(r"^[0-9a-fA-F]{64}:\d+$")


class ScriptFamily(str, Enum):
    """Output families a remote force close can pay our to-remote balance to."""

    P2WKH = "p2wkh"
    ANCHOR = "anchor"
    TAPROOT = "taproot"


@dataclass(frozen=True)
class KeyLocator:
    family: int
    index: int


@dataclass(frozen=True)
class KeyDescriptor:
    locator: KeyLocator
    public_key: bytes  # 33-byte compressed


@dataclass(frozen=True)
class UTXO:
    txid: str
    vout: int
    value: int
    script_pubkey: bytes
    address: str = ""
    height: int | None = None

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class TaprootScriptTree:
    """Single-leaf tapscript tree of a simple taproot to-remote output."""

    internal_key: bytes  # 32-byte x-only
    settle_script: bytes
    leaf_hash: bytes
    tapscript_root: bytes
    tap_tweak: bytes
    output_key: bytes  # 32-byte x-only
    output_key_odd: bool

    def control_block(self) -> bytes:
        """Control block proving the settle leaf (no siblings, so no path)."""
        return bytes([TAPROOT_LEAF_VERSION | int(self.output_key_odd)]) + self.internal_key


@dataclass
class TargetAddress:
    """A candidate channel output controlled by one of our keys."""

    address: str
    family: ScriptFamily
    key: KeyDescriptor
    script_pubkey: bytes
    tweak: bytes | None = None
    witness_script: bytes | None = None
    script_tree: TaprootScriptTree | None = None
    utxos: list[UTXO] = field(default_factory=list)

    @property
    def value(self) -> int:
        return sum(utxo.value for utxo in self.utxos)


class AncientChannelRecord(BaseModel):
    """A historical close of a legacy (tweaked to-remote key) channel."""

    model_config = {"frozen": True}

    close_outpoint: str = Field(..., description="Outpoint of the closing output (txid:vout)")
    close_addr: str = Field(..., min_length=1)
    commit_point: str = Field(..., description="Hex encoded 33-byte commitment point")

    @field_validator("close_outpoint")
    @classmethod
    def validate_outpoint(cls, v: str) -> str:
        if not OUTPOINT_PATTERN.match(v):
            raise ValueError(f"Invalid outpoint: {v}")
        return v.lower()

    @field_validator("commit_point")
    @classmethod
    def validate_commit_point(cls, v: str) -> str:
        try:
            point = bytes.fromhex(v)
        except ValueError:
            raise ValueError("Commitment point is not valid hex") from None
        if len(point) != 33 or point[0] not in (0x02, 0x03):
            raise ValueError("Commitment point must be a 33-byte compressed public key")
        return v.lower()

    @property
    def txid(self) -> str:
        return self.close_outpoint.split(":")[0]

    @property
    def vout(self) -> int:
        return int(self.close_outpoint.split(":")[1])

    @property
    def commit_point_bytes(self) -> bytes:
        return bytes.fromhex(self.commit_point)
