"""
Pytest configuration and fixtures for lnsweep tests.
"""

import pytest

from lnsweep.backends.base import BlockchainBackend, ChainOutput, ChainTransaction
from lnsweep.config import MAINNET, NetworkParams
from lnsweep.models import UTXO
from lnsweep.wallet.bip32 import HDKey, mnemonic_to_seed
from lnsweep.wallet.keyring import KeyRing


class InMemoryBackend(BlockchainBackend):
    """Chain backend answering from dictionaries, recording every query."""

    def __init__(self) -> None:
        self.unspent: dict[str, list[UTXO]] = {}
        self.transactions: dict[str, ChainTransaction] = {}
        self.lookups: list[str] = []
        self.broadcasts: list[str] = []
        self.closed = False

    def fund(self, address: str, script_pubkey: bytes, value: int, txid: str, vout: int = 0) -> UTXO:
        utxo = UTXO(txid=txid, vout=vout, value=value, script_pubkey=script_pubkey, address=address)
        self.unspent.setdefault(address, []).append(utxo)
        return utxo

    def add_transaction(self, txid: str, outputs: list[ChainOutput]) -> None:
        self.transactions[txid] = ChainTransaction(txid=txid, outputs=outputs, block_height=100)

    async def get_unspent(self, address: str) -> list[UTXO]:
        self.lookups.append(address)
        return list(self.unspent.get(address, []))

    async def get_transaction(self, txid: str) -> ChainTransaction | None:
        return self.transactions.get(txid)

    async def broadcast_transaction(self, tx_hex: str) -> str:
        self.broadcasts.append(tx_hex)
        return "00" * 32

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def test_mnemonic() -> str:
    """Test mnemonic (BIP39 test vector)"""
    return (
        "abandon abandon abandon abandon abandon abandon "
        "abandon abandon abandon abandon abandon about"
    )


@pytest.fixture
def params() -> NetworkParams:
    return MAINNET


@pytest.fixture
def master_key(test_mnemonic: str, params: NetworkParams) -> HDKey:
    return HDKey.from_seed(mnemonic_to_seed(test_mnemonic), params)


@pytest.fixture
def keyring(master_key: HDKey, params: NetworkParams) -> KeyRing:
    return KeyRing(master_key, params)


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def sweep_address() -> str:
    """BIP173 P2WPKH test vector address."""
    return "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
