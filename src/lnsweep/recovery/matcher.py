"""
Matching of legacy (tweaked to-remote key) channel closes against our keys.

Early channels paid the remote balance to the payment base key tweaked
with a per-commitment value, so the closing address cannot be derived from
the key alone. Each historical close record is tried against every payment
base key in the window until one tweaked key hashes to its address.
"""

from __future__ import annotations

from collections.abc import Iterator

from coincurve import PrivateKey
from loguru import logger

from lnsweep.backends.base import BlockchainBackend
from lnsweep.constants import KEY_FAMILY_PAYMENT_BASE
from lnsweep.errors import AddressNotFoundError, ChainLookupError
from lnsweep.models import UTXO, AncientChannelRecord, KeyDescriptor, KeyLocator, TargetAddress
from lnsweep.wallet.address import address_to_scriptpubkey, pubkey_to_p2wpkh_script
from lnsweep.wallet.keyring import KeyRing
from lnsweep.wallet.targets import (
    commitment_tweak,
    ecdh_tweak,
    tweak_public_key,
    tweaked_p2wkh_target,
)


class MatchSession:
    """
    Derivation cache for matching: the payment base key pair of every index
    in the window, derived once on first use and bound to one master key.
    """

    def __init__(self, keyring: KeyRing, window: int):
        if window < 0:
            raise ValueError(f"Invalid recovery window: {window}")
        self.keyring = keyring
        self.window = window
        self.fingerprint = keyring.fingerprint
        self.not_found: list[AncientChannelRecord] = []
        self._entries: list[tuple[PrivateKey, KeyDescriptor]] | None = None

    def check_keyring(self, keyring: KeyRing) -> None:
        if keyring.fingerprint != self.fingerprint:
            raise ValueError(
                f"Session is bound to master key {self.fingerprint.hex()}, "
                f"not {keyring.fingerprint.hex()}"
            )

    @property
    def entries(self) -> list[tuple[PrivateKey, KeyDescriptor]]:
        if self._entries is None:
            logger.debug(f"Deriving {self.window} payment base keys for matching")
            entries = []
            for index in range(self.window):
                locator = KeyLocator(family=KEY_FAMILY_PAYMENT_BASE, index=index)
                private_key = self.keyring.derive_private_key(locator)
                descriptor = KeyDescriptor(
                    locator=locator, public_key=private_key.public_key.format()
                )
                entries.append((private_key, descriptor))
            self._entries = entries
        return self._entries

    def _tweaks(
        self, private_key: PrivateKey, base_point: bytes, commit_point: bytes
    ) -> Iterator[bytes]:
        yield ecdh_tweak(private_key, commit_point)
        yield commitment_tweak(commit_point, base_point)

    def find(self, record: AncientChannelRecord) -> tuple[KeyDescriptor, bytes]:
        """
        Find the key and single tweak that produce the record's close address.

        Raises:
            AddressError: the close address is malformed or for another network
            AddressNotFoundError: no key in the window matches
        """
        commit_point = record.commit_point_bytes
        close_script = address_to_scriptpubkey(record.close_addr, self.keyring.params)

        for private_key, descriptor in self.entries:
            for tweak in self._tweaks(private_key, descriptor.public_key, commit_point):
                tweaked = tweak_public_key(descriptor.public_key, tweak)
                if pubkey_to_p2wpkh_script(tweaked) == close_script:
                    return descriptor, tweak

        raise AddressNotFoundError(
            f"Address {record.close_addr} not found in {self.window} payment base keys"
        )


class LegacyMatcher:
    def __init__(self, keyring: KeyRing, backend: BlockchainBackend):
        self.keyring = keyring
        self.backend = backend

    async def match(
        self, records: list[AncientChannelRecord], session: MatchSession
    ) -> list[TargetAddress]:
        session.check_keyring(self.keyring)

        targets: list[TargetAddress] = []
        for record in records:
            try:
                descriptor, tweak = session.find(record)
            except AddressNotFoundError as e:
                logger.debug(str(e))
                session.not_found.append(record)
                continue

            logger.info(
                f"Found legacy channel {record.close_outpoint} at index "
                f"{descriptor.locator.index}"
            )
            targets.append(await self._target_for(record, descriptor, tweak))

        if session.not_found:
            logger.warning(f"{len(session.not_found)} legacy channel record(s) did not match")
        return targets

    async def _target_for(
        self, record: AncientChannelRecord, descriptor: KeyDescriptor, tweak: bytes
    ) -> TargetAddress:
        tx = await self.backend.get_transaction(record.txid)
        if tx is None:
            raise ChainLookupError(f"Close transaction {record.txid} not found")
        if record.vout >= len(tx.outputs):
            raise ChainLookupError(f"Close transaction {record.txid} has no output {record.vout}")

        target = tweaked_p2wkh_target(descriptor, tweak, self.keyring.params)
        output = tx.outputs[record.vout]
        if output.script_pubkey != target.script_pubkey:
            raise ChainLookupError(
                f"Output {record.close_outpoint} does not pay to {record.close_addr}"
            )

        target.utxos = [
            UTXO(
                txid=record.txid,
                vout=record.vout,
                value=output.value,
                script_pubkey=output.script_pubkey,
                address=target.address,
                height=tx.block_height,
            )
        ]
        return target
