"""
Base blockchain backend interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from lnsweep.models import UTXO


@dataclass
class ChainOutput:
    value: int
    script_pubkey: bytes
    address: str = ""


@dataclass
class ChainTransaction:
    txid: str
    outputs: list[ChainOutput] = field(default_factory=list)
    block_height: int | None = None


class BlockchainBackend(ABC):
    """
    Read-only chain access plus transaction publishing.

    Only address-indexed lookups are needed: the recovery never keeps a
    wallet of its own.
    """

    @abstractmethod
    async def get_unspent(self, address: str) -> list[UTXO]:
        """Unspent outputs paying to address"""

    @abstractmethod
    async def get_transaction(self, txid: str) -> ChainTransaction | None:
        """Get transaction by txid, None if unknown"""

    @abstractmethod
    async def broadcast_transaction(self, tx_hex: str) -> str:
        """Broadcast transaction, returns txid"""

    async def close(self) -> None:
        """Close backend connection"""
