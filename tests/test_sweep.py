"""
Tests for sweep transaction building and signing.
"""

import pytest
from coincurve import PublicKey, PublicKeyXOnly

from lnsweep.constants import MAX_TX_IN_SEQUENCE
from lnsweep.errors import AddressError, InsufficientFundsError, SigningError
from lnsweep.models import UTXO, KeyDescriptor
from lnsweep.recovery.sweep import SweepBuilder, TxWeightEstimator, fee_for_weight
from lnsweep.wallet.signing import (
    SigHashContext,
    TxOutput,
    compute_sighash_segwit,
    compute_sighash_taproot_script,
    create_p2wpkh_script_code,
)
from lnsweep.wallet.targets import targets_for
from txparse import deserialize_transaction


def funded(keyring, index, family_position, value, txid, vout=0):
    target = targets_for(keyring.payment_base(index), keyring.params)[family_position]
    target.utxos = [
        UTXO(txid=txid, vout=vout, value=value, script_pubkey=target.script_pubkey)
    ]
    return target


@pytest.fixture
def three_family_targets(keyring):
    return [
        funded(keyring, 0, 0, 40_000, "a1" * 32),
        funded(keyring, 1, 1, 50_000, "b2" * 32, vout=3),
        funded(keyring, 2, 2, 60_000, "c3" * 32, vout=1),
    ]


class TestWeightEstimation:
    def test_single_p2wkh(self):
        estimator = TxWeightEstimator()
        estimator.add_output(b"\x00\x14" + bytes(20))
        estimator.add_witness_input(109)
        assert estimator.weight() == 439
        assert estimator.vsize() == 110

    def test_fee_rounding(self):
        # 10 sat/vB -> 2500 sat/kw
        assert fee_for_weight(10, 439) == 1097
        assert fee_for_weight(1, 1000) == 250
        assert fee_for_weight(3, 1001) == 750


class TestSweepBuilder:
    def test_p2wkh_sweep(self, keyring, sweep_address):
        target = funded(keyring, 3, 0, 50_000, "55" * 32)
        sweep = SweepBuilder(keyring).build_and_sign([target], sweep_address, fee_rate=10)

        assert sweep.fee == 1097
        assert sweep.output_value == 48_903

        tx = deserialize_transaction(sweep.raw)
        assert tx.version == 2
        assert tx.locktime == 0
        assert tx.inputs[0].sequence == MAX_TX_IN_SEQUENCE
        assert len(tx.outputs) == 1
        assert tx.outputs[0].value == 48_903
        assert tx.txid == sweep.txid

        signature, pubkey = tx.inputs[0].witness
        assert pubkey == target.key.public_key
        context = SigHashContext.from_transaction(
            tx, [TxOutput(value=50_000, script=target.script_pubkey)]
        )
        sighash = compute_sighash_segwit(
            tx, context, 0, create_p2wpkh_script_code(target.script_pubkey), 50_000
        )
        assert signature[-1] == 0x01
        assert PublicKey(pubkey).verify(signature[:-1], sighash, hasher=None)

    def test_all_families(self, keyring, sweep_address, three_family_targets):
        sweep = SweepBuilder(keyring).build_and_sign(
            three_family_targets, sweep_address, fee_rate=5
        )

        # 164 stripped bytes * 4 + 2 + 109 + 113 + 138
        assert sweep.weight == 1018
        assert sweep.fee == fee_for_weight(5, 1018)
        assert sweep.output_value == 150_000 - sweep.fee

        tx = deserialize_transaction(sweep.raw)
        assert [inp.sequence for inp in tx.inputs] == [MAX_TX_IN_SEQUENCE, 1, 1]

        anchor, taproot = three_family_targets[1], three_family_targets[2]
        assert tx.inputs[1].witness[1] == anchor.witness_script
        assert len(tx.inputs[1].witness) == 2

        tree = taproot.script_tree
        assert tx.inputs[2].witness[1:] == [tree.settle_script, tree.control_block()]

        spent = [
            TxOutput(value=t.utxos[0].value, script=t.script_pubkey) for t in three_family_targets
        ]
        context = SigHashContext.from_transaction(tx, spent)

        anchor_sighash = compute_sighash_segwit(tx, context, 1, anchor.witness_script, 50_000)
        assert PublicKey(anchor.key.public_key).verify(
            tx.inputs[1].witness[0][:-1], anchor_sighash, hasher=None
        )

        signature = tx.inputs[2].witness[0]
        assert len(signature) == 64
        taproot_sighash = compute_sighash_taproot_script(tx, context, 2, tree.leaf_hash)
        assert PublicKeyXOnly(taproot.key.public_key[1:]).verify(signature, taproot_sighash)

    def test_deterministic(self, keyring, sweep_address, three_family_targets):
        builder = SweepBuilder(keyring)
        first = builder.build_and_sign(three_family_targets, sweep_address, fee_rate=5)
        second = builder.build_and_sign(three_family_targets, sweep_address, fee_rate=5)
        assert first.raw == second.raw

    def test_below_dust(self, keyring, sweep_address):
        target = funded(keyring, 0, 0, 1_500, "66" * 32)
        with pytest.raises(InsufficientFundsError):
            SweepBuilder(keyring).build_and_sign([target], sweep_address, fee_rate=10)

    def test_no_inputs(self, keyring, sweep_address):
        unfunded = targets_for(keyring.payment_base(0), keyring.params)
        with pytest.raises(InsufficientFundsError):
            SweepBuilder(keyring).build_and_sign(unfunded, sweep_address, fee_rate=10)

    def test_invalid_sweep_address(self, keyring):
        target = funded(keyring, 0, 0, 50_000, "66" * 32)
        with pytest.raises(AddressError):
            SweepBuilder(keyring).build_and_sign([target], "not-an-address", fee_rate=10)

    def test_key_mismatch(self, keyring, sweep_address):
        target = funded(keyring, 0, 0, 50_000, "66" * 32)
        target.key = KeyDescriptor(
            locator=target.key.locator,
            public_key=keyring.payment_base(1).public_key,
        )
        with pytest.raises(SigningError):
            SweepBuilder(keyring).build_and_sign([target], sweep_address, fee_rate=10)

    def test_taproot_output_key_mismatch(self, keyring, sweep_address):
        target = funded(keyring, 0, 2, 50_000, "66" * 32)
        target.utxos = [
            UTXO(txid="66" * 32, vout=0, value=50_000, script_pubkey=b"\x51\x20" + bytes(32))
        ]
        with pytest.raises(SigningError):
            SweepBuilder(keyring).build_and_sign([target], sweep_address, fee_rate=10)

    def test_custom_dust_limit(self, keyring, sweep_address):
        target = funded(keyring, 0, 0, 1_500, "66" * 32)
        sweep = SweepBuilder(keyring, dust_limit=0).build_and_sign(
            [target], sweep_address, fee_rate=10
        )
        assert sweep.output_value == 1_500 - 1097
