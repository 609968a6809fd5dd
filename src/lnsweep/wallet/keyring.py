"""
lnd key ring: maps key locators (family, index) onto the wallet's tree.
"""

from __future__ import annotations

from coincurve import PrivateKey

from lnsweep.config import NetworkParams
from lnsweep.constants import BIP84_PURPOSE, HARDENED_KEY_START, KEY_FAMILY_PAYMENT_BASE
from lnsweep.models import KeyDescriptor, KeyLocator
from lnsweep.wallet.bip32 import HDKey, derive_children, lnd_key_path, parse_path


class KeyRing:
    """
    Derives channel keys for key locators.

    Private keys are handed out per call and never cached here.
    """

    def __init__(self, master: HDKey, params: NetworkParams):
        self.master = master
        self.params = params

    @property
    def fingerprint(self) -> bytes:
        return self.master.fingerprint

    def key_path(self, locator: KeyLocator) -> str:
        return lnd_key_path(self.params.coin_type, locator.family, locator.index)

    def _derive(self, locator: KeyLocator) -> HDKey:
        return derive_children(self.master, parse_path(self.key_path(locator)))

    def derive_key(self, locator: KeyLocator) -> KeyDescriptor:
        key = self._derive(locator)
        return KeyDescriptor(locator=locator, public_key=key.get_public_key_bytes())

    def derive_private_key(self, locator: KeyLocator) -> PrivateKey:
        return self._derive(locator).private_key

    def payment_base(self, index: int) -> KeyDescriptor:
        return self.derive_key(KeyLocator(family=KEY_FAMILY_PAYMENT_BASE, index=index))

    def wallet_address(self) -> str:
        """First BIP84 receive address of the on-chain wallet (m/84'/coin'/0'/0/0)."""
        key = derive_children(
            self.master,
            [
                HARDENED_KEY_START + BIP84_PURPOSE,
                HARDENED_KEY_START + self.params.coin_type,
                HARDENED_KEY_START,
                0,
                0,
            ],
        )
        return key.get_address(self.params)
