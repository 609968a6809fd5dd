"""
Sweep transaction building and signing.

All discovered outputs are spent into a single output paying the sweep
address. Inputs keep the order of the targets they came from, so the same
targets always produce the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from coincurve import PrivateKey
from loguru import logger

from lnsweep.config import NetworkParams
from lnsweep.constants import (
    BASE_TX_SIZE,
    INPUT_SIZE,
    MAX_TX_IN_SEQUENCE,
    P2WKH_WITNESS_SIZE,
    SIGHASH_ALL,
    SIGHASH_DEFAULT,
    SWEEP_DUST_LIMIT,
    TAPROOT_TO_REMOTE_WITNESS_SIZE,
    TO_REMOTE_CONFIRMED_WITNESS_SIZE,
    TO_REMOTE_CSV_DELAY,
    WITNESS_HEADER_SIZE,
    WITNESS_SCALE_FACTOR,
)
from lnsweep.errors import DerivationError, InsufficientFundsError, SigningError
from lnsweep.models import UTXO, ScriptFamily, TargetAddress
from lnsweep.wallet.address import (
    check_sweep_address,
    pubkey_to_p2wpkh_script,
    taproot_output_script,
)
from lnsweep.wallet.keyring import KeyRing
from lnsweep.wallet.signing import (
    SigHashContext,
    Transaction,
    TxInput,
    TxOutput,
    create_p2wpkh_script_code,
    encode_varint,
    sign_segwit_input,
    sign_taproot_script_input,
)
from lnsweep.wallet.targets import taproot_tweak_key, tweak_private_key

WITNESS_SIZES = {
    ScriptFamily.P2WKH: P2WKH_WITNESS_SIZE,
    ScriptFamily.ANCHOR: TO_REMOTE_CONFIRMED_WITNESS_SIZE,
    ScriptFamily.TAPROOT: TAPROOT_TO_REMOTE_WITNESS_SIZE,
}


class TxWeightEstimator:
    """Worst-case weight of a transaction spending SegWit inputs."""

    def __init__(self) -> None:
        self.input_count = 0
        self.output_count = 0
        self.input_size = 0
        self.output_size = 0
        self.witness_size = 0

    def add_witness_input(self, witness_size: int) -> None:
        self.input_count += 1
        self.input_size += INPUT_SIZE
        self.witness_size += witness_size

    def add_input(self, family: ScriptFamily) -> None:
        self.add_witness_input(WITNESS_SIZES[family])

    def add_output(self, script: bytes) -> None:
        self.output_count += 1
        self.output_size += 8 + len(encode_varint(len(script))) + len(script)

    def weight(self) -> int:
        stripped = (
            BASE_TX_SIZE
            + len(encode_varint(self.input_count))
            + self.input_size
            + len(encode_varint(self.output_count))
            + self.output_size
        )
        weight = stripped * WITNESS_SCALE_FACTOR
        if self.witness_size:
            weight += WITNESS_HEADER_SIZE + self.witness_size
        return weight

    def vsize(self) -> int:
        return (self.weight() + WITNESS_SCALE_FACTOR - 1) // WITNESS_SCALE_FACTOR


def fee_for_weight(fee_rate: int, weight: int) -> int:
    """
    Fee in satoshis for a sat/vbyte rate, via the per-kiloweight rate
    (integer arithmetic, rounding down at each step).
    """
    sat_per_kw = fee_rate * 1000 // WITNESS_SCALE_FACTOR
    return sat_per_kw * weight // 1000


@dataclass(frozen=True)
class SignedSweep:
    raw: bytes
    txid: str
    fee: int
    weight: int
    total_input: int
    output_value: int
    input_count: int

    @property
    def hex(self) -> str:
        return self.raw.hex()


def _input_sequence(family: ScriptFamily) -> int:
    if family == ScriptFamily.P2WKH:
        return MAX_TX_IN_SEQUENCE
    return TO_REMOTE_CSV_DELAY


class SweepBuilder:
    """
    Builds and signs the sweep of a set of populated targets.

    Private keys are re-derived from each target's key locator when its
    inputs are signed.
    """

    def __init__(self, keyring: KeyRing, dust_limit: int = SWEEP_DUST_LIMIT):
        self.keyring = keyring
        self.dust_limit = dust_limit

    @property
    def params(self) -> NetworkParams:
        return self.keyring.params

    def build_and_sign(
        self, targets: list[TargetAddress], sweep_address: str, fee_rate: int
    ) -> SignedSweep:
        sweep_script = check_sweep_address(sweep_address, self.params)

        spends: list[tuple[TargetAddress, UTXO]] = [
            (target, utxo) for target in targets for utxo in target.utxos
        ]
        if not spends:
            raise InsufficientFundsError("No outputs to sweep")

        estimator = TxWeightEstimator()
        estimator.add_output(sweep_script)

        tx = Transaction(version=2, locktime=0)
        spent_outputs: list[TxOutput] = []
        total = 0
        for target, utxo in spends:
            estimator.add_input(target.family)
            tx.inputs.append(
                TxInput(txid=utxo.txid, vout=utxo.vout, sequence=_input_sequence(target.family))
            )
            spent_outputs.append(TxOutput(value=utxo.value, script=utxo.script_pubkey))
            total += utxo.value

        weight = estimator.weight()
        fee = fee_for_weight(fee_rate, weight)
        output_value = total - fee

        logger.info(f"Fee {fee} sats of {total} total amount (estimated weight {weight})")

        if output_value < self.dust_limit:
            raise InsufficientFundsError(
                f"Found {len(spends)} sweep input(s) with total value of {total} satoshis, "
                f"which after a fee of {fee} is below the dust limit of {self.dust_limit}"
            )

        tx.outputs.append(TxOutput(value=output_value, script=sweep_script))

        context = SigHashContext.from_transaction(tx, spent_outputs)
        for index, (target, utxo) in enumerate(spends):
            tx.inputs[index].witness = self._sign_input(tx, context, index, target, utxo)

        raw = tx.serialize()
        return SignedSweep(
            raw=raw,
            txid=tx.txid,
            fee=fee,
            weight=weight,
            total_input=total,
            output_value=output_value,
            input_count=len(spends),
        )

    def _private_key(self, target: TargetAddress) -> PrivateKey:
        try:
            private_key = self.keyring.derive_private_key(target.key.locator)
        except DerivationError as e:
            raise SigningError(f"Could not derive key for {target.address}: {e}") from e

        if private_key.public_key.format() != target.key.public_key:
            raise SigningError(
                f"Derived key for {target.key.locator} does not match the target's public key"
            )
        return private_key

    def _sign_input(
        self,
        tx: Transaction,
        context: SigHashContext,
        index: int,
        target: TargetAddress,
        utxo: UTXO,
    ) -> list[bytes]:
        private_key = self._private_key(target)

        if target.family == ScriptFamily.TAPROOT:
            tree = target.script_tree
            if tree is None:
                raise SigningError(f"Taproot target {target.address} has no script tree")

            output_key, odd, tweak = taproot_tweak_key(tree.internal_key, tree.tapscript_root)
            if tweak != tree.tap_tweak or odd != tree.output_key_odd:
                raise SigningError(f"Tap tweak mismatch for {target.address}")
            if utxo.script_pubkey != taproot_output_script(output_key):
                raise SigningError(f"Output key mismatch for {utxo.outpoint}")

            signature = sign_taproot_script_input(
                tx, context, index, tree.leaf_hash, private_key, SIGHASH_DEFAULT
            )
            return [signature, tree.settle_script, tree.control_block()]

        if target.family == ScriptFamily.ANCHOR:
            if not target.witness_script:
                raise SigningError(f"Anchor target {target.address} has no witness script")
            signature = sign_segwit_input(
                tx, context, index, target.witness_script, utxo.value, private_key, SIGHASH_ALL
            )
            return [signature, target.witness_script]

        if target.tweak is not None:
            try:
                private_key = tweak_private_key(private_key, target.tweak)
            except DerivationError as e:
                raise SigningError(str(e)) from e

        pubkey = private_key.public_key.format()
        if pubkey_to_p2wpkh_script(pubkey) != utxo.script_pubkey:
            raise SigningError(f"Key does not control {utxo.outpoint}")

        script_code = create_p2wpkh_script_code(utxo.script_pubkey)
        signature = sign_segwit_input(
            tx, context, index, script_code, utxo.value, private_key, SIGHASH_ALL
        )
        return [signature, pubkey]
