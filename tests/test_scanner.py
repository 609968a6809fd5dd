"""
Tests for the balance scanner.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from lnsweep.errors import ChainLookupError
from lnsweep.models import ScriptFamily
from lnsweep.recovery.scanner import BalanceScanner
from lnsweep.recovery.sweep import SweepBuilder
from lnsweep.wallet.targets import targets_for


def fund_target(backend, keyring, index, family_position, value, txid):
    target = targets_for(keyring.payment_base(index), keyring.params)[family_position]
    backend.fund(target.address, target.script_pubkey, value, txid)
    return target


class TestBalanceScanner:
    @pytest.mark.asyncio
    async def test_scans_every_index_and_family(self, keyring, backend):
        scanner = BalanceScanner(keyring, backend)
        found = await scanner.scan(5)

        assert found == []
        assert len(backend.lookups) == 15
        assert len(set(backend.lookups)) == 15

    @pytest.mark.asyncio
    async def test_no_gap_limit(self, keyring, backend):
        fund_target(backend, keyring, 29, 0, 10_000, "11" * 32)
        found = await BalanceScanner(keyring, backend).scan(30)

        assert len(found) == 1
        assert found[0].key.locator.index == 29

    @pytest.mark.asyncio
    async def test_results_ordered_by_index_then_family(self, keyring, backend):
        fund_target(backend, keyring, 3, 1, 20_000, "22" * 32)
        fund_target(backend, keyring, 1, 2, 30_000, "33" * 32)
        fund_target(backend, keyring, 3, 0, 40_000, "44" * 32)

        found = await BalanceScanner(keyring, backend, concurrency=4).scan(5)

        assert [(t.key.locator.index, t.family) for t in found] == [
            (1, ScriptFamily.TAPROOT),
            (3, ScriptFamily.P2WKH),
            (3, ScriptFamily.ANCHOR),
        ]
        assert [t.value for t in found] == [30_000, 40_000, 20_000]

    @pytest.mark.asyncio
    async def test_window_outside_funded_index(self, keyring, backend):
        fund_target(backend, keyring, 5, 0, 10_000, "11" * 32)
        assert await BalanceScanner(keyring, backend).scan(5) == []

    @pytest.mark.asyncio
    async def test_lookup_error_aborts(self, keyring, backend, monkeypatch):
        failing = AsyncMock(side_effect=ChainLookupError("backend down"))
        monkeypatch.setattr(backend, "get_unspent", failing)

        with pytest.raises(ChainLookupError):
            await BalanceScanner(keyring, backend).scan(2)
        assert failing.await_count >= 1

    @pytest.mark.asyncio
    async def test_lookup_error_cancels_pending_lookups(self, keyring, backend, monkeypatch):
        scanner = BalanceScanner(keyring, backend, concurrency=2)
        slow, failing = scanner.candidates(1)[:2]
        cancelled = []

        async def get_unspent(address):
            if address == failing.address:
                raise ChainLookupError("backend down")
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(address)
                raise

        monkeypatch.setattr(backend, "get_unspent", get_unspent)

        with pytest.raises(ChainLookupError):
            await scanner.scan(1)
        assert slow.address in cancelled
        assert failing.address not in cancelled

    def test_invalid_concurrency(self, keyring, backend):
        with pytest.raises(ValueError):
            BalanceScanner(keyring, backend, concurrency=0)

    @pytest.mark.asyncio
    async def test_scan_and_sweep(self, keyring, backend, sweep_address):
        fund_target(backend, keyring, 3, 0, 50_000, "55" * 32)

        found = await BalanceScanner(keyring, backend).scan(5)
        sweep = SweepBuilder(keyring).build_and_sign(found, sweep_address, fee_rate=10)

        assert sweep.total_input == 50_000
        assert sweep.weight == 439
        assert sweep.fee == 1097
        assert sweep.output_value == 48_903
