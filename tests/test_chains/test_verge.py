"""Tests for the Verge transaction model and builder — chains/verge.py."""

from __future__ import annotations

import struct

from utxo_signer.bitcoin.keys import verify_signature
from utxo_signer.bitcoin.script import (
    p2pkh_lock_script,
    p2pkh_lock_script_from_pubkey,
    p2wpkh_lock_script_from_pubkey,
    parse_pushes,
)
from utxo_signer.bitcoin.sighash import SigHashType, SignatureVersion
from utxo_signer.bitcoin.transaction import OutPoint
from utxo_signer.chains import Chain, VergeTransaction, VergeTransactionBuilder, make_signer
from utxo_signer.signing.models import SigningInput

_TIME = 1_584_059_579


def _tx(time: int = _TIME) -> VergeTransaction:
    tx = VergeTransaction(time=time)
    tx.add_input(OutPoint(b"\x44" * 32, 0))
    tx.add_output(1000, p2pkh_lock_script(b"\x04" * 20))
    return tx


class TestVergeTransaction:
    def test_time_after_version(self) -> None:
        raw = _tx().serialize()
        assert raw[:4] == struct.pack("<i", 1)
        assert raw[4:8] == struct.pack("<I", _TIME)

    def test_roundtrip(self) -> None:
        tx = _tx()
        parsed = VergeTransaction.from_bytes(tx.serialize())
        assert parsed.time == _TIME
        assert parsed == tx

    def test_witness_marker_after_time(self) -> None:
        tx = _tx()
        tx.inputs[0].witness = [b"\x01"]
        raw = tx.serialize()
        assert raw[8:10] == b"\x00\x01"
        assert VergeTransaction.from_bytes(raw) == tx

    def test_witness_digest_commits_time(self) -> None:
        script = p2pkh_lock_script(b"\x05" * 20)
        a = _tx(1).signature_hash(script, 0, SigHashType.ALL, 10, SignatureVersion.WITNESS_V0)
        b = _tx(2).signature_hash(script, 0, SigHashType.ALL, 10, SignatureVersion.WITNESS_V0)
        assert a != b

    def test_digest_commits_time(self) -> None:
        script = p2pkh_lock_script(b"\x05" * 20)
        a = _tx(1).signature_hash(script, 0, SigHashType.ALL, 0, SignatureVersion.BASE)
        b = _tx(2).signature_hash(script, 0, SigHashType.ALL, 0, SignatureVersion.BASE)
        assert a != b


class TestVergeSigning:
    def _request(self, make_utxo, script, to_script, key) -> SigningInput:
        return SigningInput(
            utxos=(make_utxo(0, 50_000, script),),
            amount=20_000,
            to_script=to_script,
            change_script=to_script,
            byte_fee=1,
            private_keys=(key,),
            time=_TIME,
        )

    def test_builder_sets_time(self, make_utxo, to_script, key_a, pubkey_a) -> None:
        script = p2pkh_lock_script_from_pubkey(pubkey_a)
        request = self._request(make_utxo, script, to_script, key_a)
        builder = VergeTransactionBuilder()
        tx = builder.build(builder.plan(request), request, VergeTransaction)
        assert tx.time == _TIME

    def test_sign(self, make_utxo, to_script, key_a, pubkey_a) -> None:
        script = p2pkh_lock_script_from_pubkey(pubkey_a)
        request = self._request(make_utxo, script, to_script, key_a)
        signer = make_signer(Chain.VERGE)
        tx = signer.sign(request)
        assert tx.time == _TIME

        digest, _ = signer.pre_image_hashes(request)[0]
        sig, _ = parse_pushes(tx.inputs[0].script_sig)
        assert verify_signature(pubkey_a, digest, sig[:-1])

    def test_sign_p2wpkh(self, make_utxo, to_script, key_a, pubkey_a) -> None:
        script = p2wpkh_lock_script_from_pubkey(pubkey_a)
        request = self._request(make_utxo, script, to_script, key_a)
        signer = make_signer(Chain.VERGE)
        tx = signer.sign(request)

        raw = tx.serialize()
        assert raw[4:8] == struct.pack("<I", _TIME)
        assert raw[8:10] == b"\x00\x01"
        assert tx.inputs[0].script_sig == b""
        sig, pubkey = tx.inputs[0].witness
        assert pubkey == pubkey_a
        digest, _ = signer.pre_image_hashes(request)[0]
        assert verify_signature(pubkey_a, digest, sig[:-1])
