"""
Tests for to-remote output scripts and single tweaks.
"""

import hashlib

import pytest
from coincurve import PrivateKey, PublicKey

from lnsweep.constants import TAPROOT_NUMS_KEY
from lnsweep.models import KeyDescriptor, KeyLocator, ScriptFamily
from lnsweep.wallet.address import hash160, pubkey_to_p2wpkh_address
from lnsweep.wallet.signing import tagged_hash
from lnsweep.wallet.targets import (
    build_taproot_script_tree,
    commitment_tweak,
    ecdh_tweak,
    taproot_to_remote_script,
    targets_for,
    to_remote_confirmed_script,
    tweak_private_key,
    tweak_public_key,
    tweaked_p2wkh_target,
)


@pytest.fixture
def private_key() -> PrivateKey:
    return PrivateKey(bytes.fromhex("11" * 32))


@pytest.fixture
def descriptor(private_key) -> KeyDescriptor:
    return KeyDescriptor(
        locator=KeyLocator(family=3, index=0), public_key=private_key.public_key.format()
    )


class TestScripts:
    def test_to_remote_confirmed_script(self, descriptor):
        script = to_remote_confirmed_script(descriptor.public_key)
        assert script == b"\x21" + descriptor.public_key + bytes.fromhex("ad51b2")
        assert len(script) == 37

    def test_taproot_to_remote_script(self, descriptor):
        script = taproot_to_remote_script(descriptor.public_key)
        assert script == b"\x20" + descriptor.public_key[1:] + bytes.fromhex("ac51b275")
        assert len(script) == 37

    def test_uncompressed_key_rejected(self, private_key):
        with pytest.raises(ValueError):
            to_remote_confirmed_script(private_key.public_key.format(compressed=False))


class TestTargetsFor:
    def test_family_order(self, descriptor, params):
        targets = targets_for(descriptor, params)
        assert [t.family for t in targets] == [
            ScriptFamily.P2WKH,
            ScriptFamily.ANCHOR,
            ScriptFamily.TAPROOT,
        ]
        assert len({t.address for t in targets}) == 3

    def test_deterministic(self, descriptor, params):
        first = [(t.address, t.script_pubkey) for t in targets_for(descriptor, params)]
        second = [(t.address, t.script_pubkey) for t in targets_for(descriptor, params)]
        assert first == second

    def test_p2wkh_target(self, descriptor, params):
        target = targets_for(descriptor, params)[0]
        assert target.script_pubkey == b"\x00\x14" + hash160(descriptor.public_key)
        assert target.address.startswith("bc1q")
        assert target.tweak is None

    def test_anchor_target(self, descriptor, params):
        target = targets_for(descriptor, params)[1]
        assert target.witness_script == to_remote_confirmed_script(descriptor.public_key)
        assert target.script_pubkey == (
            b"\x00\x20" + hashlib.sha256(target.witness_script).digest()
        )

    def test_taproot_target(self, descriptor, params):
        target = targets_for(descriptor, params)[2]
        tree = target.script_tree
        assert tree is not None
        assert target.address.startswith("bc1p")
        assert target.script_pubkey == b"\x51\x20" + tree.output_key


class TestTaprootScriptTree:
    def test_single_leaf_root(self, descriptor):
        tree = build_taproot_script_tree(descriptor.public_key)
        script = taproot_to_remote_script(descriptor.public_key)
        leaf = tagged_hash("TapLeaf", b"\xc0" + bytes([len(script)]) + script)
        assert tree.settle_script == script
        assert tree.leaf_hash == leaf
        assert tree.tapscript_root == leaf

    def test_output_key(self, descriptor):
        tree = build_taproot_script_tree(descriptor.public_key)
        nums_x = TAPROOT_NUMS_KEY[1:]
        tweak = tagged_hash("TapTweak", nums_x + tree.tapscript_root)
        output = PublicKey(TAPROOT_NUMS_KEY).add(tweak).format()

        assert tree.internal_key == nums_x
        assert tree.tap_tweak == tweak
        assert tree.output_key == output[1:]
        assert tree.output_key_odd == (output[0] == 0x03)

    def test_control_block(self, descriptor):
        tree = build_taproot_script_tree(descriptor.public_key)
        control_block = tree.control_block()
        assert len(control_block) == 33
        assert control_block[0] & 0xFE == 0xC0
        assert control_block[0] & 0x01 == int(tree.output_key_odd)
        assert control_block[1:] == TAPROOT_NUMS_KEY[1:]


class TestSingleTweak:
    def test_ecdh_tweak_is_hashed_shared_point(self, private_key):
        commit_point = PrivateKey(bytes.fromhex("22" * 32)).public_key.format()
        shared = PublicKey(commit_point).multiply(private_key.secret).format()
        assert ecdh_tweak(private_key, commit_point) == hashlib.sha256(shared).digest()

    def test_ecdh_tweak_symmetric(self, private_key):
        other = PrivateKey(bytes.fromhex("22" * 32))
        assert ecdh_tweak(private_key, other.public_key.format()) == ecdh_tweak(
            other, private_key.public_key.format()
        )

    def test_commitment_tweak(self, descriptor):
        commit_point = PrivateKey(bytes.fromhex("22" * 32)).public_key.format()
        assert commitment_tweak(commit_point, descriptor.public_key) == (
            hashlib.sha256(commit_point + descriptor.public_key).digest()
        )

    def test_public_and_private_tweaks_agree(self, private_key):
        tweak = hashlib.sha256(b"tweak").digest()
        tweaked_private = tweak_private_key(private_key, tweak)
        assert tweaked_private.public_key.format() == tweak_public_key(
            private_key.public_key.format(), tweak
        )

    def test_tweaked_p2wkh_target(self, descriptor, params):
        tweak = hashlib.sha256(b"tweak").digest()
        target = tweaked_p2wkh_target(descriptor, tweak, params)
        tweaked = tweak_public_key(descriptor.public_key, tweak)

        assert target.family == ScriptFamily.P2WKH
        assert target.tweak == tweak
        assert target.key == descriptor
        assert target.address == pubkey_to_p2wpkh_address(tweaked, params)
        assert target.address != targets_for(descriptor, params)[0].address
