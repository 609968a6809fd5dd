"""
Bitcoin address generation and parsing utilities.

Native SegWit only (BIP173 bech32 for v0, BIP350 bech32m for v1+), plus the
legacy P2PKH form printed by derive-key.
"""

from __future__ import annotations

import hashlib

import base58

from lnsweep.config import NetworkParams
from lnsweep.errors import AddressError

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32_CONST = 1
BECH32M_CONST = 0x2BC830A3


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def bech32_polymod(values: list[int]) -> int:
    """Bech32 checksum polymod"""
    gen = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    chk = 1
    for v in values:
        b = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ v
        for i in range(5):
            chk ^= gen[i] if ((b >> i) & 1) else 0
    return chk


def bech32_hrp_expand(hrp: str) -> list[int]:
    """Expand HRP for bech32"""
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def bech32_create_checksum(hrp: str, data: list[int], const: int = BECH32_CONST) -> list[int]:
    """Create bech32 (const=1) or bech32m checksum"""
    values = bech32_hrp_expand(hrp) + data
    polymod = bech32_polymod(values + [0, 0, 0, 0, 0, 0]) ^ const
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def bech32_encode(hrp: str, data: list[int], const: int = BECH32_CONST) -> str:
    """Encode bech32 string"""
    combined = data + bech32_create_checksum(hrp, data, const)
    return hrp + "1" + "".join([CHARSET[d] for d in combined])


def bech32_decode(bech: str) -> tuple[str, list[int], int]:
    """
    Decode a bech32/bech32m string.

    Returns:
        (hrp, data without checksum, checksum constant)
    """
    if any(ord(x) < 33 or ord(x) > 126 for x in bech):
        raise AddressError(f"Invalid character in address: {bech}")
    if bech.lower() != bech and bech.upper() != bech:
        raise AddressError(f"Mixed case address: {bech}")
    bech = bech.lower()
    pos = bech.rfind("1")
    if pos < 1 or pos + 7 > len(bech) or len(bech) > 90:
        raise AddressError(f"Invalid bech32 structure: {bech}")
    if not all(x in CHARSET for x in bech[pos + 1 :]):
        raise AddressError(f"Invalid bech32 character: {bech}")

    hrp = bech[:pos]
    data = [CHARSET.find(x) for x in bech[pos + 1 :]]
    const = bech32_polymod(bech32_hrp_expand(hrp) + data)
    if const not in (BECH32_CONST, BECH32M_CONST):
        raise AddressError(f"Invalid bech32 checksum: {bech}")
    return hrp, data[:-6], const


def convertbits(data: bytes | list[int], frombits: int, tobits: int, pad: bool = True) -> list[int]:
    """Convert between bit groups"""
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1

    for value in data:
        if value < 0 or (value >> frombits):
            raise ValueError("Invalid value")
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)

    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        raise ValueError("Invalid bits")

    return ret


def encode_segwit_address(hrp: str, witness_version: int, witness_program: bytes) -> str:
    const = BECH32_CONST if witness_version == 0 else BECH32M_CONST
    return bech32_encode(hrp, [witness_version] + convertbits(witness_program, 8, 5), const)


def decode_segwit_address(hrp: str, address: str) -> tuple[int, bytes]:
    """
    Decode a native SegWit address for the expected HRP.

    Returns:
        (witness_version, witness_program)
    """
    addr_hrp, data, const = bech32_decode(address)
    if addr_hrp != hrp:
        raise AddressError(f"Address {address} is not valid for this network (expected {hrp})")
    if not data:
        raise AddressError(f"Empty witness data: {address}")

    witness_version = data[0]
    try:
        program = bytes(convertbits(data[1:], 5, 8, pad=False))
    except ValueError as e:
        raise AddressError(f"Invalid witness program in {address}: {e}") from e

    if witness_version > 16 or not 2 <= len(program) <= 40:
        raise AddressError(f"Invalid witness program in {address}")
    if witness_version == 0 and len(program) not in (20, 32):
        raise AddressError(f"Invalid v0 witness program length: {len(program)}")
    expected_const = BECH32_CONST if witness_version == 0 else BECH32M_CONST
    if const != expected_const:
        raise AddressError(f"Wrong checksum variant for witness version {witness_version}")

    return witness_version, program


def pubkey_to_p2wpkh_address(pubkey: bytes, params: NetworkParams) -> str:
    """
    Convert compressed public key to P2WPKH (native segwit) address.
    BIP173 bech32 encoding.
    """
    if len(pubkey) != 33:
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey)}")

    return encode_segwit_address(params.bech32_hrp, 0, hash160(pubkey))


def pubkey_to_p2wpkh_script(pubkey: bytes) -> bytes:
    """Create P2WPKH scriptPubKey (OP_0 <20-byte-hash>)"""
    return bytes([0x00, 0x14]) + hash160(pubkey)


def pubkey_to_p2pkh_address(pubkey: bytes, params: NetworkParams) -> str:
    """Legacy base58check P2PKH address."""
    payload = bytes([params.p2pkh_prefix]) + hash160(pubkey)
    return base58.b58encode_check(payload).decode("ascii")


def script_to_p2wsh_address(script: bytes, params: NetworkParams) -> str:
    """
    Convert a witness script to P2WSH (pay-to-witness-script-hash) address.

    Args:
        script: The witness script bytes (e.g. an anchor to-remote script)
        params: Network parameters

    Returns:
        Bech32 encoded P2WSH address
    """
    # P2WSH uses SHA256, not HASH160
    return encode_segwit_address(params.bech32_hrp, 0, hashlib.sha256(script).digest())


def script_to_p2wsh_scriptpubkey(script: bytes) -> bytes:
    """Create P2WSH scriptPubKey (OP_0 <32-byte-hash>)"""
    return bytes([0x00, 0x20]) + hashlib.sha256(script).digest()


def taproot_output_address(output_key: bytes, params: NetworkParams) -> str:
    """BIP350 bech32m P2TR address for a 32-byte x-only output key."""
    if len(output_key) != 32:
        raise ValueError(f"Invalid x-only key length: {len(output_key)}")
    return encode_segwit_address(params.bech32_hrp, 1, output_key)


def taproot_output_script(output_key: bytes) -> bytes:
    """Create P2TR scriptPubKey (OP_1 <32-byte-key>)"""
    return bytes([0x51, 0x20]) + output_key


def address_to_scriptpubkey(address: str, params: NetworkParams) -> bytes:
    """
    Convert a native SegWit address of the given network to scriptPubKey.

    Supports P2WPKH, P2WSH and P2TR.
    """
    witness_version, program = decode_segwit_address(params.bech32_hrp, address)

    if witness_version == 0:
        return bytes([0x00, len(program)]) + program
    if witness_version == 1 and len(program) == 32:
        return taproot_output_script(program)

    raise AddressError(f"Unsupported witness version {witness_version}: {address}")


def check_sweep_address(address: str, params: NetworkParams) -> bytes:
    """
    Validate a sweep destination and return its scriptPubKey.

    Only P2WKH and P2TR destinations are accepted.
    """
    if not address:
        raise AddressError("Sweep address must be set")

    script = address_to_scriptpubkey(address, params)
    is_p2wkh = len(script) == 22 and script[0] == 0x00
    is_p2tr = len(script) == 34 and script[0] == 0x51
    if not (is_p2wkh or is_p2tr):
        raise AddressError(f"Sweep address {address} must be a P2WKH or P2TR address")
    return script
