"""
Balance scanner: finds funded to-remote outputs in the key window.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from lnsweep.backends.base import BlockchainBackend
from lnsweep.models import TargetAddress
from lnsweep.wallet.keyring import KeyRing
from lnsweep.wallet.targets import targets_for


class BalanceScanner:
    """
    Scans payment base keys 0..window-1 for all output families.

    Every index is queried; a remote close may have paid any of them, so
    there is no gap limit. Lookups run with at most ``concurrency`` requests
    in flight, and results come back in (index, family) order.
    """

    def __init__(self, keyring: KeyRing, backend: BlockchainBackend, concurrency: int = 1):
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        self.keyring = keyring
        self.backend = backend
        self.concurrency = concurrency

    def candidates(self, window: int) -> list[TargetAddress]:
        if window < 0:
            raise ValueError(f"Invalid recovery window: {window}")

        candidates: list[TargetAddress] = []
        for index in range(window):
            descriptor = self.keyring.payment_base(index)
            candidates.extend(targets_for(descriptor, self.keyring.params))
        return candidates

    async def scan(self, window: int) -> list[TargetAddress]:
        candidates = self.candidates(window)
        logger.info(f"Scanning {len(candidates)} addresses for {window} keys...")

        semaphore = asyncio.Semaphore(self.concurrency)

        async def lookup(target: TargetAddress) -> TargetAddress:
            async with semaphore:
                target.utxos = await self.backend.get_unspent(target.address)
            logger.debug(
                f"Index {target.key.locator.index} {target.family.value} "
                f"{target.address}: {len(target.utxos)} UTXO(s)"
            )
            return target

        tasks = [asyncio.create_task(lookup(target)) for target in candidates]
        try:
            # gather keeps input order; the first lookup error aborts the scan
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        found = [target for target in results if target.utxos]
        for target in found:
            logger.info(
                f"Found {target.value} sats in {target.family.value} output "
                f"{target.address} (index {target.key.locator.index})"
            )
        return found
