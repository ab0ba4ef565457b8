"""Tests for the Zen replay-protection builder — chains/zen.py."""

from __future__ import annotations

import pytest

from utxo_signer.bitcoin.keys import verify_signature
from utxo_signer.bitcoin.script import (
    ScriptType,
    classify_script,
    p2pkh_lock_script_from_pubkey,
    p2wpkh_lock_script_from_pubkey,
    parse_pushes,
    replay_protection_suffix,
    with_replay_protection,
)
from utxo_signer.chains import Chain, ZenTransactionBuilder, make_signer
from utxo_signer.errors import PlanningFailedError
from utxo_signer.signing.builder import TransactionBuilder
from utxo_signer.signing.models import SigningInput

_BLOCK = bytes.fromhex("0000000004a7dd9c1ac7e1db9ed1e2a77e2ae9c8f7fd3e7e0e1e3f5a2d9f4b11")
_HEIGHT = 142_091


@pytest.fixture
def zen_input(make_utxo, to_script, change_script, key_a, pubkey_a) -> SigningInput:
    return SigningInput(
        utxos=(make_utxo(0, 50_000, p2pkh_lock_script_from_pubkey(pubkey_a)),),
        amount=20_000,
        to_script=to_script,
        change_script=change_script,
        byte_fee=1,
        private_keys=(key_a,),
        pre_block_hash=_BLOCK,
        pre_block_height=_HEIGHT,
    )


class TestZenBuilder:
    def test_outputs_protected(self, zen_input) -> None:
        signer = make_signer(Chain.ZEN)
        tx = signer.sign(zen_input)
        suffix = replay_protection_suffix(_BLOCK, _HEIGHT)
        assert len(tx.outputs) == 2
        for out in tx.outputs:
            assert out.script_pubkey.endswith(suffix)
            assert classify_script(out.script_pubkey) == ScriptType.P2PKH

    def test_witness_output_untouched(self, zen_input, pubkey_b) -> None:
        segwit = p2wpkh_lock_script_from_pubkey(pubkey_b)
        request = SigningInput(
            utxos=zen_input.utxos,
            amount=20_000,
            to_script=segwit,
            change_script=zen_input.change_script,
            byte_fee=1,
            private_keys=zen_input.private_keys,
            pre_block_hash=_BLOCK,
            pre_block_height=_HEIGHT,
        )
        tx = make_signer(Chain.ZEN).sign(request)
        assert tx.outputs[0].script_pubkey == segwit

    def test_missing_block_hash(self, zen_input) -> None:
        request = SigningInput(
            utxos=zen_input.utxos,
            amount=20_000,
            to_script=zen_input.to_script,
            change_script=zen_input.change_script,
            private_keys=zen_input.private_keys,
        )
        with pytest.raises(PlanningFailedError, match="block hash"):
            make_signer(Chain.ZEN).sign(request)

    def test_estimate_counts_suffix(self, zen_input) -> None:
        base = TransactionBuilder().estimate_vsize(zen_input, zen_input.utxos, with_change=True)
        zen = ZenTransactionBuilder().estimate_vsize(
            zen_input, zen_input.utxos, with_change=True
        )
        suffix = len(replay_protection_suffix(_BLOCK, _HEIGHT))
        assert zen == base + 2 * suffix

    def test_estimate_covers_signed_size(self, zen_input) -> None:
        signer = make_signer(Chain.ZEN)
        tx = signer.sign(zen_input)
        estimate = signer.builder.estimate_vsize(zen_input, zen_input.utxos, with_change=True)
        assert estimate >= tx.vsize


class TestZenSigning:
    def test_spend_protected_coin(self, make_utxo, to_script, key_a, pubkey_a) -> None:
        owning = with_replay_protection(p2pkh_lock_script_from_pubkey(pubkey_a), _BLOCK, _HEIGHT)
        request = SigningInput(
            utxos=(make_utxo(0, 50_000, owning),),
            amount=20_000,
            to_script=to_script,
            change_script=to_script,
            byte_fee=1,
            private_keys=(key_a,),
            pre_block_hash=_BLOCK,
            pre_block_height=_HEIGHT,
        )
        signer = make_signer(Chain.ZEN)
        tx = signer.sign(request)

        digest, _ = signer.pre_image_hashes(request)[0]
        sig, pubkey = parse_pushes(tx.inputs[0].script_sig)
        assert pubkey == pubkey_a
        assert verify_signature(pubkey_a, digest, sig[:-1])
