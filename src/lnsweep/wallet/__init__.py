"""
Key derivation, output scripts and transaction signing.
"""

from lnsweep.wallet.bip32 import HDKey, derive_children, mnemonic_to_seed, parse_path
from lnsweep.wallet.keyring import KeyRing
from lnsweep.wallet.targets import targets_for

__all__ = [
    "HDKey",
    "KeyRing",
    "derive_children",
    "mnemonic_to_seed",
    "parse_path",
    "targets_for",
]
