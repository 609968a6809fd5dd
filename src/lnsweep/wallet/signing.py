"""
Bitcoin transaction serialization and signing for sweep inputs.

SegWit v0 inputs (P2WKH, P2WSH) are signed with BIP143 digests and ECDSA,
taproot script-path inputs with BIP341 digests and BIP340 Schnorr.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

from coincurve import PrivateKey

from lnsweep.constants import SIGHASH_ALL, SIGHASH_DEFAULT, TAPROOT_LEAF_VERSION
from lnsweep.errors import SigningError


@dataclass
class TxInput:
    txid: str  # RPC (big-endian) hex
    vout: int
    sequence: int = 0xFFFFFFFF
    script_sig: bytes = b""
    witness: list[bytes] = field(default_factory=list)

    @property
    def outpoint(self) -> bytes:
        return bytes.fromhex(self.txid)[::-1] + self.vout.to_bytes(4, "little")


@dataclass
class TxOutput:
    value: int
    script: bytes

    def serialize(self) -> bytes:
        return self.value.to_bytes(8, "little") + encode_varint(len(self.script)) + self.script


@dataclass
class Transaction:
    version: int = 2
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    locktime: int = 0

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    def serialize(self, include_witness: bool = True) -> bytes:
        with_witness = include_witness and self.has_witness

        result = self.version.to_bytes(4, "little")
        if with_witness:
            result += b"\x00\x01"

        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.outpoint
            result += encode_varint(len(inp.script_sig)) + inp.script_sig
            result += inp.sequence.to_bytes(4, "little")

        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()

        if with_witness:
            for inp in self.inputs:
                result += encode_varint(len(inp.witness))
                for item in inp.witness:
                    result += encode_varint(len(item)) + item

        result += self.locktime.to_bytes(4, "little")
        return result

    @property
    def txid(self) -> str:
        """Double SHA256 of the non-witness serialization, RPC byte order."""
        return hash256(self.serialize(include_witness=False))[::-1].hex()


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def tagged_hash(tag: str, data: bytes) -> bytes:
    """BIP340 tagged hash: SHA256(SHA256(tag) || SHA256(tag) || data)."""
    tag_hash = hashlib.sha256(tag.encode("utf-8")).digest()
    return hashlib.sha256(tag_hash + tag_hash + data).digest()


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


@dataclass(frozen=True)
class SigHashContext:
    """
    Per-transaction digest midstates shared by every input.

    Must be computed after all inputs, outputs and spent outputs are final.
    """

    version: int
    locktime: int
    # BIP341 single SHA256 midstates
    sha_prevouts: bytes
    sha_amounts: bytes
    sha_scriptpubkeys: bytes
    sha_sequences: bytes
    sha_outputs: bytes

    # BIP143 uses the same data hashed twice
    @property
    def hash_prevouts(self) -> bytes:
        return sha256(self.sha_prevouts)

    @property
    def hash_sequence(self) -> bytes:
        return sha256(self.sha_sequences)

    @property
    def hash_outputs(self) -> bytes:
        return sha256(self.sha_outputs)

    @classmethod
    def from_transaction(cls, tx: Transaction, spent_outputs: list[TxOutput]) -> SigHashContext:
        if len(spent_outputs) != len(tx.inputs):
            raise SigningError(
                f"Need {len(tx.inputs)} spent outputs, got {len(spent_outputs)}"
            )
        return cls(
            version=tx.version,
            locktime=tx.locktime,
            sha_prevouts=sha256(b"".join(inp.outpoint for inp in tx.inputs)),
            sha_amounts=sha256(b"".join(out.value.to_bytes(8, "little") for out in spent_outputs)),
            sha_scriptpubkeys=sha256(
                b"".join(encode_varint(len(out.script)) + out.script for out in spent_outputs)
            ),
            sha_sequences=sha256(b"".join(inp.sequence.to_bytes(4, "little") for inp in tx.inputs)),
            sha_outputs=sha256(b"".join(out.serialize() for out in tx.outputs)),
        )


def compute_sighash_segwit(
    tx: Transaction,
    context: SigHashContext,
    input_index: int,
    script_code: bytes,
    value: int,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """BIP143 digest for SIGHASH_ALL."""
    if input_index >= len(tx.inputs):
        raise SigningError("Input index out of range")
    if sighash_type != SIGHASH_ALL:
        raise SigningError(f"Unsupported sighash type: {sighash_type}")

    target_input = tx.inputs[input_index]

    preimage = (
        tx.version.to_bytes(4, "little")
        + context.hash_prevouts
        + context.hash_sequence
        + target_input.outpoint
        + encode_varint(len(script_code))
        + script_code
        + value.to_bytes(8, "little")
        + target_input.sequence.to_bytes(4, "little")
        + context.hash_outputs
        + tx.locktime.to_bytes(4, "little")
        + sighash_type.to_bytes(4, "little")
    )

    return hash256(preimage)


def tap_leaf_hash(script: bytes, leaf_version: int = TAPROOT_LEAF_VERSION) -> bytes:
    return tagged_hash("TapLeaf", bytes([leaf_version]) + encode_varint(len(script)) + script)


def compute_sighash_taproot_script(
    tx: Transaction,
    context: SigHashContext,
    input_index: int,
    leaf_hash: bytes,
    sighash_type: int = SIGHASH_DEFAULT,
) -> bytes:
    """BIP341 digest for a script-path spend with SIGHASH_DEFAULT/ALL, no annex."""
    if input_index >= len(tx.inputs):
        raise SigningError("Input index out of range")
    if sighash_type not in (SIGHASH_DEFAULT, SIGHASH_ALL):
        raise SigningError(f"Unsupported sighash type: {sighash_type}")

    spend_type = 2  # ext_flag 1, no annex
    sig_msg = (
        bytes([0x00, sighash_type])  # epoch, hash_type
        + tx.version.to_bytes(4, "little")
        + tx.locktime.to_bytes(4, "little")
        + context.sha_prevouts
        + context.sha_amounts
        + context.sha_scriptpubkeys
        + context.sha_sequences
        + context.sha_outputs
        + bytes([spend_type])
        + input_index.to_bytes(4, "little")
        + leaf_hash
        + b"\x00"  # key_version
        + b"\xff\xff\xff\xff"  # codesep_pos
    )
    return tagged_hash("TapSighash", sig_msg)


def create_p2wpkh_script_code(script_pubkey: bytes) -> bytes:
    """
    BIP143 scriptCode for spending a P2WPKH output, built from the output's
    own locking script: OP_DUP OP_HASH160 <pkh> OP_EQUALVERIFY OP_CHECKSIG.
    """
    if len(script_pubkey) != 22 or script_pubkey[:2] != b"\x00\x14":
        raise SigningError(f"Not a P2WPKH script: {script_pubkey.hex()}")
    return b"\x76\xa9\x14" + script_pubkey[2:] + b"\x88\xac"


def sign_segwit_input(
    tx: Transaction,
    context: SigHashContext,
    input_index: int,
    script_code: bytes,
    value: int,
    private_key: PrivateKey,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    Sign a SegWit v0 input.

    Returns:
        DER-encoded signature with sighash type byte appended
    """
    sighash = compute_sighash_segwit(tx, context, input_index, script_code, value, sighash_type)

    # The sighash is already SHA256d; coincurve's sign() with hasher=None skips hashing
    signature = private_key.sign(sighash, hasher=None)

    return signature + bytes([sighash_type])


def sign_taproot_script_input(
    tx: Transaction,
    context: SigHashContext,
    input_index: int,
    leaf_hash: bytes,
    private_key: PrivateKey,
    sighash_type: int = SIGHASH_DEFAULT,
) -> bytes:
    """
    Sign a taproot script-path input with BIP340 Schnorr.

    Zero auxiliary randomness keeps signatures reproducible.
    """
    sighash = compute_sighash_taproot_script(tx, context, input_index, leaf_hash, sighash_type)
    signature = private_key.sign_schnorr(sighash, bytes(32))

    if sighash_type == SIGHASH_DEFAULT:
        return signature
    return signature + bytes([sighash_type])
