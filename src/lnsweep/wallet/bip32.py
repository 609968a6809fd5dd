"""
BIP32 HD key derivation reproducing lnd's (btcwallet's) key tree.

lnd derives with btcd's legacy "non-standard" child derivation: a derived
private key is stored without leading zero bytes, and a hardened child of
such a short key is computed from the key left-aligned in the HMAC input.
btcwallet additionally stores the coin-type and account level keys as
serialized strings, which pads them back to 32 bytes. derive_children()
replays both effects so derived keys match the wallet bit for bit.
"""

from __future__ import annotations

import hashlib
import hmac
import unicodedata
from collections.abc import Sequence

import base58
from coincurve import PrivateKey, PublicKey

from lnsweep.config import MAINNET, NETWORKS, NetworkParams
from lnsweep.constants import HARDENED_KEY_START, LND_PURPOSE, SECP256K1_N
from lnsweep.errors import DerivationError, InvalidPathError
from lnsweep.wallet.address import hash160, pubkey_to_p2pkh_address, pubkey_to_p2wpkh_address

MAX_DEPTH = 0xFF
SERIALIZED_KEY_LENGTH = 78


class HDKey:
    """
    Hierarchical Deterministic private key.

    ``raw_key`` is the private scalar exactly as the wallet stores it, which
    for keys derived with derive_child_nonstandard() may be shorter than
    32 bytes.
    """

    def __init__(
        self,
        key: bytes,
        chain_code: bytes,
        depth: int = 0,
        parent_fingerprint: bytes = b"\x00\x00\x00\x00",
        child_number: int = 0,
        path: tuple[int, ...] = (),
        version: bytes = MAINNET.xprv_version,
    ):
        if not key or len(key) > 32:
            raise DerivationError(f"Invalid private key length: {len(key)}")
        try:
            self._private_key = PrivateKey(key.rjust(32, b"\x00"))
        except ValueError as e:
            raise DerivationError(f"Invalid private key: {e}") from e

        self._key = key
        self._public_key = self._private_key.public_key
        self.chain_code = chain_code
        self.depth = depth
        self.parent_fingerprint = parent_fingerprint
        self.child_number = child_number
        self.path = path
        self.version = version

    @property
    def private_key(self) -> PrivateKey:
        """Return the coincurve PrivateKey instance."""
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        """Return the coincurve PublicKey instance."""
        return self._public_key

    @property
    def raw_key(self) -> bytes:
        return self._key

    @property
    def fingerprint(self) -> bytes:
        return hash160(self.get_public_key_bytes())[:4]

    @property
    def path_string(self) -> str:
        parts = ["m"]
        for index in self.path:
            if index >= HARDENED_KEY_START:
                parts.append(f"{index - HARDENED_KEY_START}'")
            else:
                parts.append(str(index))
        return "/".join(parts)

    @classmethod
    def from_seed(cls, seed: bytes, params: NetworkParams = MAINNET) -> HDKey:
        """Create master HD key from seed"""
        if not 16 <= len(seed) <= 64:
            raise DerivationError(f"Invalid seed length: {len(seed)}")

        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_bytes = hmac_result[:32]
        chain_code = hmac_result[32:]

        key_int = int.from_bytes(key_bytes, "big")
        if key_int == 0 or key_int >= SECP256K1_N:
            raise DerivationError("Unusable seed")

        return cls(key_bytes, chain_code, depth=0, version=params.xprv_version)

    @classmethod
    def from_string(cls, xprv: str) -> HDKey:
        """Parse a base58check extended private key of any known network."""
        try:
            payload = base58.b58decode_check(xprv.strip())
        except ValueError as e:
            raise ValueError(f"Invalid extended key encoding: {e}") from e

        if len(payload) != SERIALIZED_KEY_LENGTH:
            raise ValueError(f"Invalid extended key length: {len(payload)}")

        version = payload[:4]
        if version not in {p.xprv_version for p in NETWORKS.values()}:
            raise ValueError("Not an extended private key of a known network")
        if payload[45] != 0x00:
            raise ValueError("Malformed private key data")

        return cls(
            key=payload[46:78],
            chain_code=payload[13:45],
            depth=payload[4],
            parent_fingerprint=payload[5:9],
            child_number=int.from_bytes(payload[9:13], "big"),
            version=version,
        )

    def _serialize(self, version: bytes, key_data: bytes) -> str:
        payload = (
            version
            + bytes([self.depth])
            + self.parent_fingerprint
            + self.child_number.to_bytes(4, "big")
            + self.chain_code
            + key_data
        )
        return base58.b58encode_check(payload).decode("ascii")

    def to_string(self, params: NetworkParams | None = None) -> str:
        """Serialize as xprv/tprv; the key is always padded to 32 bytes."""
        version = params.xprv_version if params else self.version
        return self._serialize(version, b"\x00" + self._key.rjust(32, b"\x00"))

    def to_public_string(self, params: NetworkParams | None = None) -> str:
        """Serialize the neutered key as xpub/tpub."""
        if params is None:
            params = next(
                (p for p in NETWORKS.values() if p.xprv_version == self.version), MAINNET
            )
        return self._serialize(params.xpub_version, self.get_public_key_bytes())

    def derive(self, path: str) -> HDKey:
        """
        Derive a descendant from path notation (e.g. "m/1017'/0'/3'/0/0")
        using the wallet's derivation rules.
        """
        return derive_children(self, parse_path(path))

    def derive_child(self, index: int) -> HDKey:
        """Standard BIP32 child derivation."""
        return self._derive_child(index, legacy=False)

    def derive_child_nonstandard(self, index: int) -> HDKey:
        """btcd's legacy child derivation (unpadded keys)."""
        return self._derive_child(index, legacy=True)

    def _derive_child(self, index: int, legacy: bool) -> HDKey:
        if not 0 <= index <= 0xFFFFFFFF:
            raise DerivationError(f"Child index out of range: {index}")
        if self.depth == MAX_DEPTH:
            raise DerivationError("Cannot derive beyond max depth")

        hardened = index >= HARDENED_KEY_START

        if hardened:
            if legacy:
                key_data = self._key.ljust(32, b"\x00")
            else:
                key_data = self._key.rjust(32, b"\x00")
            data = b"\x00" + key_data + index.to_bytes(4, "big")
        else:
            data = self.get_public_key_bytes() + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        offset_int = int.from_bytes(key_offset, "big")
        if offset_int >= SECP256K1_N:
            raise DerivationError(f"Invalid child at index {index}")

        parent_key_int = int.from_bytes(self._key, "big")
        child_key_int = (parent_key_int + offset_int) % SECP256K1_N

        if child_key_int == 0:
            raise DerivationError(f"Invalid child at index {index}")

        if legacy:
            child_key_bytes = child_key_int.to_bytes((child_key_int.bit_length() + 7) // 8, "big")
        else:
            child_key_bytes = child_key_int.to_bytes(32, "big")

        return HDKey(
            child_key_bytes,
            child_chain,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint,
            child_number=index,
            path=self.path + (index,),
            version=self.version,
        )

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        return self._private_key.secret

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        return self._public_key.format(compressed=compressed)

    def to_wif(self, params: NetworkParams = MAINNET) -> str:
        """Compressed WIF encoding of the private key."""
        payload = bytes([params.wif_prefix]) + self.get_private_key_bytes() + b"\x01"
        return base58.b58encode_check(payload).decode("ascii")

    def get_address(self, params: NetworkParams = MAINNET) -> str:
        """Get P2WPKH (Native SegWit) address for this key"""
        return pubkey_to_p2wpkh_address(self.get_public_key_bytes(), params)

    def get_legacy_address(self, params: NetworkParams = MAINNET) -> str:
        return pubkey_to_p2pkh_address(self.get_public_key_bytes(), params)


def _reserialize(key: HDKey) -> HDKey:
    """Round-trip a key through its xprv string, as btcwallet's key store does."""
    reloaded = HDKey.from_string(key.to_string())
    reloaded.path = key.path
    return reloaded


def derive_children(key: HDKey, path: Sequence[int]) -> HDKey:
    """
    Derive along ``path`` the way lnd does.

    The coin-type (depth 2) and account (depth 3) keys are re-serialized
    unless they belong to the default account 0, which btcwallet derives
    directly.
    """
    current = key
    for idx, part in enumerate(path):
        derived = current.derive_child_nonstandard(part)

        depth = derived.depth
        key_id = (part - HARDENED_KEY_START) & 0xFFFFFFFF
        next_id = 0
        if depth == 2 and len(path) > 2 and idx + 1 < len(path):
            next_id = (path[idx + 1] - HARDENED_KEY_START) & 0xFFFFFFFF

        if (depth == 2 and next_id != 0) or (depth == 3 and key_id != 0):
            current = _reserialize(derived)
        else:
            current = derived

    return current


def parse_path(path: str) -> list[int]:
    """Parse "m/1017'/0'/3'/0/5" into child indices ('/h mark hardened)."""
    path = path.strip()
    if not path:
        raise InvalidPathError("Path cannot be empty")
    if not path.startswith("m/"):
        raise InvalidPathError(f"Path must start with m/: {path}")

    indices = []
    for part in path.split("/")[1:]:
        hardened = part.endswith("'") or part.endswith("h")
        index_str = part[:-1] if hardened else part
        if not index_str.isascii() or not index_str.isdigit():
            raise InvalidPathError(f'Could not parse part "{part}" of path {path}')

        index = int(index_str)
        if index >= HARDENED_KEY_START:
            raise InvalidPathError(f"Index {index} out of range in path {path}")
        if hardened:
            index += HARDENED_KEY_START
        indices.append(index)

    return indices


def derive_key(master: HDKey, path: str) -> HDKey:
    """Derive the key at ``path`` from the root key."""
    return master.derive(path)


def lnd_key_path(coin_type: int, family: int, index: int) -> str:
    return f"m/{LND_PURPOSE}'/{coin_type}'/{family}'/0/{index}"


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Convert a BIP39 mnemonic (checksum not verified) to its 64-byte seed."""
    mnemonic_bytes = unicodedata.normalize("NFKD", " ".join(mnemonic.split())).encode("utf-8")
    salt = unicodedata.normalize("NFKD", "mnemonic" + passphrase).encode("utf-8")

    return hashlib.pbkdf2_hmac("sha512", mnemonic_bytes, salt, 2048, dklen=64)
