"""
Blockchain backend implementations.

Available backends:
- EsploraBackend: Esplora REST API (blockstream.info, mempool.space or self-hosted)
"""

from lnsweep.backends.base import BlockchainBackend, ChainOutput, ChainTransaction
from lnsweep.backends.esplora import EsploraBackend

__all__ = [
    "BlockchainBackend",
    "ChainOutput",
    "ChainTransaction",
    "EsploraBackend",
]
