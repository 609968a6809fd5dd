"""
Candidate to-remote outputs for a payment base key.

A remote force close pays our balance to one of three output kinds,
depending on the channel type:

* P2WKH of the key (static remote key channels)
* P2WSH of ``<key> OP_CHECKSIGVERIFY OP_1 OP_CSV`` (anchor channels)
* P2TR whose only leaf is ``<xonly> OP_CHECKSIG OP_1 OP_CSV OP_DROP``
  under lnd's NUMS internal key (simple taproot channels)

Older channels paid to the payment base key tweaked with a per-commitment
value; see ecdh_tweak() and commitment_tweak().
"""

from __future__ import annotations

import hashlib

from coincurve import PrivateKey, PublicKey

from lnsweep.config import NetworkParams
from lnsweep.constants import SECP256K1_N, TAPROOT_LEAF_VERSION, TAPROOT_NUMS_KEY
from lnsweep.errors import DerivationError
from lnsweep.models import KeyDescriptor, ScriptFamily, TargetAddress, TaprootScriptTree
from lnsweep.wallet.address import (
    pubkey_to_p2wpkh_address,
    pubkey_to_p2wpkh_script,
    script_to_p2wsh_address,
    script_to_p2wsh_scriptpubkey,
    taproot_output_address,
    taproot_output_script,
)
from lnsweep.wallet.signing import tagged_hash, tap_leaf_hash

OP_CHECKSIG = 0xAC
OP_CHECKSIGVERIFY = 0xAD
OP_1 = 0x51
OP_CHECKSEQUENCEVERIFY = 0xB2
OP_DROP = 0x75


def _check_pubkey(pubkey: bytes) -> None:
    if len(pubkey) != 33 or pubkey[0] not in (0x02, 0x03):
        raise ValueError(f"Expected 33-byte compressed public key, got {len(pubkey)} bytes")


def to_remote_confirmed_script(pubkey: bytes) -> bytes:
    """<pubkey> OP_CHECKSIGVERIFY OP_1 OP_CHECKSEQUENCEVERIFY"""
    _check_pubkey(pubkey)
    return bytes([0x21]) + pubkey + bytes([OP_CHECKSIGVERIFY, OP_1, OP_CHECKSEQUENCEVERIFY])


def taproot_to_remote_script(pubkey: bytes) -> bytes:
    """<xonly pubkey> OP_CHECKSIG OP_1 OP_CHECKSEQUENCEVERIFY OP_DROP"""
    _check_pubkey(pubkey)
    return bytes([0x20]) + pubkey[1:] + bytes([OP_CHECKSIG, OP_1, OP_CHECKSEQUENCEVERIFY, OP_DROP])


def taproot_tweak_key(internal_key: bytes, merkle_root: bytes) -> tuple[bytes, bool, bytes]:
    """
    BIP341 output key for an internal key and script tree root.

    Returns:
        (x-only output key, whether its y coordinate is odd, tweak)
    """
    if len(internal_key) == 33:
        internal_key = internal_key[1:]
    tweak = tagged_hash("TapTweak", internal_key + merkle_root)
    if int.from_bytes(tweak, "big") >= SECP256K1_N:
        raise DerivationError("Taproot tweak exceeds curve order")

    # The internal key is lifted to its even-y point
    output = PublicKey(b"\x02" + internal_key).add(tweak).format()
    return output[1:], output[0] == 0x03, tweak


def build_taproot_script_tree(pubkey: bytes) -> TaprootScriptTree:
    settle_script = taproot_to_remote_script(pubkey)
    leaf_hash = tap_leaf_hash(settle_script, TAPROOT_LEAF_VERSION)

    # One leaf: the root is the leaf hash
    internal_key = TAPROOT_NUMS_KEY[1:]
    output_key, odd, tweak = taproot_tweak_key(internal_key, leaf_hash)

    return TaprootScriptTree(
        internal_key=internal_key,
        settle_script=settle_script,
        leaf_hash=leaf_hash,
        tapscript_root=leaf_hash,
        tap_tweak=tweak,
        output_key=output_key,
        output_key_odd=odd,
    )


def p2wkh_target(descriptor: KeyDescriptor, params: NetworkParams) -> TargetAddress:
    return TargetAddress(
        address=pubkey_to_p2wpkh_address(descriptor.public_key, params),
        family=ScriptFamily.P2WKH,
        key=descriptor,
        script_pubkey=pubkey_to_p2wpkh_script(descriptor.public_key),
    )


def anchor_target(descriptor: KeyDescriptor, params: NetworkParams) -> TargetAddress:
    script = to_remote_confirmed_script(descriptor.public_key)
    return TargetAddress(
        address=script_to_p2wsh_address(script, params),
        family=ScriptFamily.ANCHOR,
        key=descriptor,
        script_pubkey=script_to_p2wsh_scriptpubkey(script),
        witness_script=script,
    )


def taproot_target(descriptor: KeyDescriptor, params: NetworkParams) -> TargetAddress:
    tree = build_taproot_script_tree(descriptor.public_key)
    return TargetAddress(
        address=taproot_output_address(tree.output_key, params),
        family=ScriptFamily.TAPROOT,
        key=descriptor,
        script_pubkey=taproot_output_script(tree.output_key),
        witness_script=tree.settle_script,
        script_tree=tree,
    )


def targets_for(descriptor: KeyDescriptor, params: NetworkParams) -> list[TargetAddress]:
    """All candidate outputs for one payment base key, in family order."""
    return [
        p2wkh_target(descriptor, params),
        anchor_target(descriptor, params),
        taproot_target(descriptor, params),
    ]


def ecdh_tweak(private_key: PrivateKey, commit_point: bytes) -> bytes:
    """SHA256 of the compressed ECDH shared point with the commitment point."""
    return private_key.ecdh(commit_point)


def commitment_tweak(commit_point: bytes, base_point: bytes) -> bytes:
    """BOLT-3 single tweak: SHA256(per_commitment_point || basepoint)."""
    return hashlib.sha256(commit_point + base_point).digest()


def tweak_public_key(pubkey: bytes, tweak: bytes) -> bytes:
    """pubkey + tweak*G, compressed."""
    try:
        return PublicKey(pubkey).add(tweak).format()
    except ValueError as e:
        raise DerivationError(f"Cannot tweak public key: {e}") from e


def tweak_private_key(private_key: PrivateKey, tweak: bytes) -> PrivateKey:
    try:
        return private_key.add(tweak)
    except ValueError as e:
        raise DerivationError(f"Cannot tweak private key: {e}") from e


def tweaked_p2wkh_target(
    descriptor: KeyDescriptor, tweak: bytes, params: NetworkParams
) -> TargetAddress:
    """P2WKH target paying to the tweaked key; the descriptor keeps the base key."""
    tweaked = tweak_public_key(descriptor.public_key, tweak)
    return TargetAddress(
        address=pubkey_to_p2wpkh_address(tweaked, params),
        family=ScriptFamily.P2WKH,
        key=descriptor,
        script_pubkey=pubkey_to_p2wpkh_script(tweaked),
        tweak=tweak,
    )
