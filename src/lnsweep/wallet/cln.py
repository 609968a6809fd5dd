"""
Core Lightning key derivation from the 32-byte hsm_secret.

Core Lightning does not use a BIP32 tree for channel keys. Each channel's
funding key is the end of an HKDF-SHA256 chain keyed by the hsm_secret, the
peer's node key and the channel's database id.
"""

from __future__ import annotations

from coincurve import PrivateKey, PublicKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from lnsweep.constants import SECP256K1_N
from lnsweep.errors import DerivationError

INFO_PEER_SEED = b"peer seed"
INFO_PER_PEER = b"per-peer seed"
INFO_C_LIGHTNING = b"c-lightning"
INFO_NODE_ID = b"nodeid"


def hkdf_sha256(key: bytes, salt: bytes | None, info: bytes) -> bytes:
    """Derive 32 bytes with HKDF-SHA256 (extract, then expand)."""
    return HKDF(algorithm=hashes.SHA256(), length=32, salt=salt, info=info).derive(key)


def _check_secret(hsm_secret: bytes) -> None:
    if len(hsm_secret) != 32:
        raise ValueError(f"hsm_secret must be 32 bytes, got {len(hsm_secret)}")


def funding_private_key(hsm_secret: bytes, peer_pubkey: bytes, channel_num: int) -> PrivateKey:
    _check_secret(hsm_secret)
    if len(peer_pubkey) != 33:
        raise ValueError(f"Peer public key must be 33 bytes, got {len(peer_pubkey)}")
    if not 0 <= channel_num < 2**64:
        raise ValueError(f"Channel number out of range: {channel_num}")

    channel_base = hkdf_sha256(hsm_secret, None, INFO_PEER_SEED)

    peer_and_channel = peer_pubkey + channel_num.to_bytes(8, "little")
    channel_seed = hkdf_sha256(channel_base, peer_and_channel, INFO_PER_PEER)

    funding_key = hkdf_sha256(channel_seed, None, INFO_C_LIGHTNING)
    try:
        return PrivateKey(funding_key)
    except ValueError as e:
        raise DerivationError(f"Funding key for channel {channel_num} is invalid") from e


def funding_key(hsm_secret: bytes, peer_pubkey: bytes, channel_num: int) -> PublicKey:
    """
    Derive the channel funding public key for a peer and channel number
    (the incrementing channel database index).
    """
    return funding_private_key(hsm_secret, peer_pubkey, channel_num).public_key


def node_key(hsm_secret: bytes) -> PublicKey:
    """
    Derive the node identity key.

    The salt is a little-endian 32-bit counter that is bumped until the
    HKDF output is a valid secp256k1 scalar.
    """
    _check_secret(hsm_secret)

    for counter in range(2**32):
        key = hkdf_sha256(hsm_secret, counter.to_bytes(4, "little"), INFO_NODE_ID)
        if 0 < int.from_bytes(key, "big") < SECP256K1_N:
            return PrivateKey(key).public_key

    raise DerivationError("No valid node key for hsm_secret")
