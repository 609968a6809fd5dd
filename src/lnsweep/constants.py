"""
Bitcoin and Lightning constants used for key derivation, scripts and fee sizing.

Weight figures follow lnd's input/size.go so that fee estimates for a sweep
match what the wallet itself would have produced.
"""

from __future__ import annotations

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

HARDENED_KEY_START = 0x80000000

# BIP43 purpose used by lnd for all channel keys: m/1017'/coin'/family'/0/index
LND_PURPOSE = 1017

# lnd key families (keychain.KeyFamily)
KEY_FAMILY_MULTISIG = 0
KEY_FAMILY_REVOCATION_BASE = 1
KEY_FAMILY_HTLC_BASE = 2
KEY_FAMILY_PAYMENT_BASE = 3
KEY_FAMILY_DELAY_BASE = 4
KEY_FAMILY_REVOCATION_ROOT = 5
KEY_FAMILY_NODE_KEY = 6

# BIP84 purpose, used when a sweep address is derived from the seed
BIP84_PURPOSE = 84

# Sweeps below this value are not worth broadcasting
SWEEP_DUST_LIMIT = 600  # satoshis

DEFAULT_RECOVERY_WINDOW = 200
DEFAULT_FEE_RATE = 30  # sat/vbyte

# Sentinel destination meaning "derive a P2WKH address from the root key"
ADDRESS_DERIVE_FROM_SEED = "fromseed"

# Transaction weight estimation (bytes unless noted)
WITNESS_SCALE_FACTOR = 4
BASE_TX_SIZE = 4 + 4  # version + locktime
WITNESS_HEADER_SIZE = 1 + 1  # marker + flag, weight units
INPUT_SIZE = 32 + 4 + 1 + 4  # outpoint + empty scriptSig + sequence

# number_of_witness_elements + sig_len + sig + pubkey_len + pubkey
P2WKH_WITNESS_SIZE = 1 + 1 + 73 + 1 + 33

# <pubkey> OP_CHECKSIGVERIFY OP_1 OP_CHECKSEQUENCEVERIFY
TO_REMOTE_CONFIRMED_SCRIPT_SIZE = 1 + 33 + 1 + 1 + 1
TO_REMOTE_CONFIRMED_WITNESS_SIZE = 1 + 1 + 73 + 1 + TO_REMOTE_CONFIRMED_SCRIPT_SIZE

# <xonly pubkey> OP_CHECKSIG OP_1 OP_CHECKSEQUENCEVERIFY OP_DROP
TAPROOT_TO_REMOTE_SCRIPT_SIZE = 1 + 32 + 1 + 1 + 1 + 1
TAPROOT_SIGNATURE_WITNESS_SIZE = 1 + 64
TAPROOT_BASE_CONTROL_BLOCK_SIZE = 33
TAPROOT_TO_REMOTE_WITNESS_SIZE = (
    1
    + TAPROOT_SIGNATURE_WITNESS_SIZE
    + 1
    + TAPROOT_TO_REMOTE_SCRIPT_SIZE
    + 1
    + TAPROOT_BASE_CONTROL_BLOCK_SIZE
)

# Sighash types
SIGHASH_DEFAULT = 0x00
SIGHASH_ALL = 0x01

# Sequence numbers
MAX_TX_IN_SEQUENCE = 0xFFFFFFFF
TO_REMOTE_CSV_DELAY = 1

TAPROOT_LEAF_VERSION = 0xC0

# lnd's nothing-up-my-sleeve internal key for simple taproot channel outputs
TAPROOT_NUMS_KEY = bytes.fromhex(
    "02dca094751109d0bd055d03565874e8276dd53e926b44e3bd1bb6bf4bc130a279"
)
