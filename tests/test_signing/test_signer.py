"""Tests for the signing orchestrator — signing/signer.py."""

from __future__ import annotations

import dataclasses

import pytest

from utxo_signer.bitcoin.keys import sign_digest, verify_signature
from utxo_signer.bitcoin.script import (
    ScriptType,
    classify_script,
    extract_pubkey_hash,
    p2pkh_lock_script_from_pubkey,
    p2wpkh_lock_script_from_pubkey,
)
from utxo_signer.bitcoin.transaction import Transaction
from utxo_signer.errors import (
    MissingExternalSignatureError,
    PlanningFailedError,
    SignatureMismatchError,
    SigningErrorCode,
    UnsupportedScriptTypeError,
)
from utxo_signer.signing.builder import TransactionBuilder
from utxo_signer.signing.models import SigningInput
from utxo_signer.signing.signer import TransactionSigner
from utxo_signer.utils.crypto import hash160


@pytest.fixture
def signer() -> TransactionSigner[Transaction]:
    return TransactionSigner(Transaction, TransactionBuilder())


@pytest.fixture
def request_two_inputs(make_utxo, to_script, change_script, key_a, key_b, pubkey_a, pubkey_b):
    """Two coins (P2PKH + P2WPKH) that must both be spent."""
    return SigningInput(
        utxos=(
            make_utxo(0, 30_000, p2pkh_lock_script_from_pubkey(pubkey_a)),
            make_utxo(1, 30_000, p2wpkh_lock_script_from_pubkey(pubkey_b)),
        ),
        amount=45_000,
        to_script=to_script,
        change_script=change_script,
        byte_fee=5,
        private_keys=(key_a, key_b),
    )


def _keys_by_pubkey(key_a, key_b, pubkey_a, pubkey_b) -> dict[bytes, bytes]:
    return {pubkey_a: key_a, pubkey_b: key_b}


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class TestPlan:
    def test_plan_idempotent(self, signer, request_two_inputs) -> None:
        assert signer.plan(request_two_inputs) == signer.plan(request_two_inputs)

    def test_supplied_plan_used(self, signer, request_two_inputs) -> None:
        plan = dataclasses.replace(
            signer.plan(request_two_inputs),
            fee=7777,
            change=60_000 - 45_000 - 7777,
        )
        tx = signer.sign(request_two_inputs.with_plan(plan))
        assert tx.outputs[1].value == 60_000 - 45_000 - 7777

    def test_plan_error_propagates(self, signer, request_two_inputs) -> None:
        request = dataclasses.replace(request_two_inputs, amount=100_000)
        with pytest.raises(PlanningFailedError) as exc_info:
            signer.sign(request)
        assert exc_info.value.code == SigningErrorCode.NOT_ENOUGH_UTXOS

    def test_plan_error_in_pre_image_hashes(self, signer, request_two_inputs) -> None:
        request = dataclasses.replace(request_two_inputs, utxos=())
        with pytest.raises(PlanningFailedError) as exc_info:
            signer.pre_image_hashes(request)
        assert exc_info.value.code == SigningErrorCode.MISSING_INPUT_UTXOS


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class TestSign:
    def test_all_inputs_signed(self, signer, request_two_inputs, pubkey_a, pubkey_b) -> None:
        tx = signer.sign(request_two_inputs)
        hashes = signer.pre_image_hashes(request_two_inputs)

        legacy, witness = tx.inputs
        assert legacy.script_sig != b""
        assert legacy.witness == []
        assert witness.script_sig == b""
        assert witness.witness[1] == pubkey_b
        assert verify_signature(pubkey_b, hashes[1][0], witness.witness[0][:-1])
        assert tx.has_witness()

    def test_deterministic(self, signer, request_two_inputs) -> None:
        assert signer.sign(request_two_inputs).to_hex() == signer.sign(request_two_inputs).to_hex()

    def test_roundtrip_parse(self, signer, request_two_inputs) -> None:
        tx = signer.sign(request_two_inputs)
        assert Transaction.from_bytes(tx.serialize()) == tx

    def test_unsupported_script(self, signer, make_utxo, to_script, key_a) -> None:
        request = SigningInput(
            utxos=(make_utxo(0, 30_000, b"\x6a\x01\x00"),),
            amount=10_000,
            to_script=to_script,
            change_script=to_script,
            fixed_fee=100,
            private_keys=(key_a,),
        )
        with pytest.raises(UnsupportedScriptTypeError):
            signer.sign(request)


class TestPreImageHashes:
    def test_alignment(self, signer, request_two_inputs) -> None:
        plan = signer.plan(request_two_inputs)
        hashes = signer.pre_image_hashes(request_two_inputs)

        assert len(hashes) == len(plan.utxos)
        for (digest, pubkey), utxo in zip(hashes, plan.utxos, strict=True):
            assert len(digest) == 32
            assert hash160(pubkey) == extract_pubkey_hash(utxo.script)

    def test_watch_only(self, signer, request_two_inputs, pubkey_a, pubkey_b) -> None:
        watch_only = dataclasses.replace(
            request_two_inputs, private_keys=(), public_keys=(pubkey_a, pubkey_b)
        )
        assert signer.pre_image_hashes(watch_only) == signer.pre_image_hashes(request_two_inputs)


# ---------------------------------------------------------------------------
# External signatures
# ---------------------------------------------------------------------------


class TestExternal:
    def _external(self, signer, request, keys):
        return [
            (sign_digest(keys[pubkey], digest), pubkey)
            for digest, pubkey in signer.pre_image_hashes(request)
        ]

    def test_matches_normal(
        self, signer, request_two_inputs, key_a, key_b, pubkey_a, pubkey_b
    ) -> None:
        keys = _keys_by_pubkey(key_a, key_b, pubkey_a, pubkey_b)
        external = self._external(signer, request_two_inputs, keys)
        keyless = dataclasses.replace(request_two_inputs, private_keys=())

        external_tx = signer.sign(keyless, external_signatures=external)
        normal_tx = signer.sign(request_two_inputs)
        assert external_tx.serialize() == normal_tx.serialize()

    def test_short_list(
        self, signer, request_two_inputs, key_a, key_b, pubkey_a, pubkey_b
    ) -> None:
        keys = _keys_by_pubkey(key_a, key_b, pubkey_a, pubkey_b)
        external = self._external(signer, request_two_inputs, keys)
        with pytest.raises(MissingExternalSignatureError):
            signer.sign(request_two_inputs, external_signatures=external[:1])

    def test_surplus(self, signer, request_two_inputs, key_a, key_b, pubkey_a, pubkey_b) -> None:
        keys = _keys_by_pubkey(key_a, key_b, pubkey_a, pubkey_b)
        external = self._external(signer, request_two_inputs, keys)
        with pytest.raises(SignatureMismatchError):
            signer.sign(request_two_inputs, external_signatures=[*external, external[0]])

    def test_swapped(self, signer, request_two_inputs, key_a, key_b, pubkey_a, pubkey_b) -> None:
        keys = _keys_by_pubkey(key_a, key_b, pubkey_a, pubkey_b)
        external = self._external(signer, request_two_inputs, keys)
        with pytest.raises(SignatureMismatchError):
            signer.sign(request_two_inputs, external_signatures=external[::-1])

    def test_not_combined_with_estimation(self, signer, request_two_inputs) -> None:
        with pytest.raises(SignatureMismatchError, match="estimation"):
            signer.sign(request_two_inputs, estimation_mode=True, external_signatures=[])


# ---------------------------------------------------------------------------
# Size estimation
# ---------------------------------------------------------------------------


class TestEstimation:
    def test_size_bound(self, signer, request_two_inputs) -> None:
        estimated = signer.sign(request_two_inputs, estimation_mode=True)
        real = signer.sign(request_two_inputs)
        n = len(real.inputs)

        assert 0 <= estimated.size - real.size <= 3 * n
        assert 0 <= estimated.vsize - real.vsize <= 3 * n

    def test_no_key_material(self, signer, request_two_inputs) -> None:
        keyless = dataclasses.replace(request_two_inputs, private_keys=(bytes(32),))
        estimated = signer.sign(keyless, estimation_mode=True)
        assert len(estimated.inputs) == 2

    def test_estimate_covers_real_size(self, signer, request_two_inputs) -> None:
        plan = signer.plan(request_two_inputs)
        estimate = signer.builder.estimate_vsize(
            request_two_inputs, plan.utxos, with_change=plan.change > 0
        )
        assert estimate >= signer.sign(request_two_inputs).vsize

    def test_output_types(self, signer, request_two_inputs) -> None:
        tx = signer.sign(request_two_inputs, estimation_mode=True)
        assert all(classify_script(o.script_pubkey) == ScriptType.P2PKH for o in tx.outputs)
