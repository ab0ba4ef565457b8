"""Tests for script templates and classification — bitcoin/script.py."""

from __future__ import annotations

import pytest

from utxo_signer.bitcoin.script import (
    OpCode,
    ScriptType,
    classify_script,
    encode_script_number,
    extract_pubkey,
    extract_pubkey_hash,
    extract_script_hash,
    op_return_script,
    p2pk_lock_script,
    p2pkh_lock_script,
    p2sh_lock_script,
    p2sh_lock_script_from_redeem,
    p2wpkh_lock_script,
    p2wsh_lock_script,
    p2wsh_lock_script_from_witness,
    parse_pushes,
    push_data,
    replay_protection_suffix,
    with_replay_protection,
)

_HASH20 = bytes(range(20))
_HASH32 = bytes(range(32))

# ---------------------------------------------------------------------------
# Pushes and numbers
# ---------------------------------------------------------------------------


class TestPushData:
    def test_empty(self) -> None:
        assert push_data(b"") == b"\x00"

    def test_direct(self) -> None:
        assert push_data(b"\xab" * 75) == b"\x4b" + b"\xab" * 75

    def test_pushdata1(self) -> None:
        assert push_data(b"\xab" * 76)[:2] == b"\x4c\x4c"

    def test_pushdata2(self) -> None:
        assert push_data(b"\xab" * 256)[:3] == b"\x4d\x00\x01"

    def test_parse_pushes(self) -> None:
        script = push_data(b"a") + push_data(b"\x01" * 80) + push_data(b"")
        assert parse_pushes(script) == [b"a", b"\x01" * 80, b""]

    def test_parse_non_push(self) -> None:
        assert parse_pushes(bytes([OpCode.OP_DUP])) is None

    def test_parse_truncated(self) -> None:
        assert parse_pushes(b"\x05ab") is None


class TestScriptNumber:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (0, ""),
            (1, "01"),
            (127, "7f"),
            (128, "8000"),
            (255, "ff00"),
            (256, "0001"),
            (-1, "81"),
            (1_000_000, "40420f"),
        ],
    )
    def test_encoding(self, value: int, expected: str) -> None:
        assert encode_script_number(value).hex() == expected


# ---------------------------------------------------------------------------
# Templates and classification
# ---------------------------------------------------------------------------


class TestTemplates:
    def test_p2pkh(self) -> None:
        script = p2pkh_lock_script(_HASH20)
        assert script.hex() == "76a914" + _HASH20.hex() + "88ac"
        assert classify_script(script) == ScriptType.P2PKH
        assert extract_pubkey_hash(script) == _HASH20

    def test_p2sh(self) -> None:
        script = p2sh_lock_script(_HASH20)
        assert script.hex() == "a914" + _HASH20.hex() + "87"
        assert classify_script(script) == ScriptType.P2SH
        assert extract_script_hash(script) == _HASH20

    def test_p2wpkh(self) -> None:
        script = p2wpkh_lock_script(_HASH20)
        assert script.hex() == "0014" + _HASH20.hex()
        assert classify_script(script) == ScriptType.P2WPKH
        assert classify_script(script).is_witness
        assert extract_pubkey_hash(script) == _HASH20

    def test_p2wsh(self) -> None:
        script = p2wsh_lock_script(_HASH32)
        assert classify_script(script) == ScriptType.P2WSH
        assert extract_script_hash(script) == _HASH32

    def test_p2wsh_from_witness(self, pubkey_a) -> None:
        witness_script = p2pk_lock_script(pubkey_a)
        script = p2wsh_lock_script_from_witness(witness_script)
        assert len(script) == 34

    def test_p2sh_from_redeem(self, pubkey_a) -> None:
        redeem = p2pk_lock_script(pubkey_a)
        assert classify_script(p2sh_lock_script_from_redeem(redeem)) == ScriptType.P2SH

    def test_p2pk(self, pubkey_a) -> None:
        script = p2pk_lock_script(pubkey_a)
        assert classify_script(script) == ScriptType.P2PK
        assert extract_pubkey(script) == pubkey_a

    def test_p2pk_invalid_key(self) -> None:
        with pytest.raises(ValueError, match="public key"):
            p2pk_lock_script(b"\x02" * 10)

    def test_p2tr(self) -> None:
        script = bytes([OpCode.OP_1, 0x20]) + _HASH32
        assert classify_script(script) == ScriptType.P2TR

    def test_op_return(self) -> None:
        script = op_return_script(b"hi")
        assert script.hex() == "6a026869"
        assert classify_script(script) == ScriptType.NULL_DATA

    def test_unknown(self) -> None:
        assert classify_script(b"") == ScriptType.UNKNOWN
        assert classify_script(b"\x51") == ScriptType.UNKNOWN

    def test_bad_hash_lengths(self) -> None:
        with pytest.raises(ValueError):
            p2pkh_lock_script(b"\x00" * 19)
        with pytest.raises(ValueError):
            p2wsh_lock_script(_HASH20)

    def test_extractors_on_other_types(self) -> None:
        script = p2sh_lock_script(_HASH20)
        assert extract_pubkey_hash(script) is None
        assert extract_pubkey(script) is None
        assert extract_script_hash(p2pkh_lock_script(_HASH20)) is None


# ---------------------------------------------------------------------------
# Replay protection
# ---------------------------------------------------------------------------


class TestReplayProtection:
    def test_suffix_layout(self) -> None:
        suffix = replay_protection_suffix(_HASH32, 142091)
        assert suffix[0] == 0x20
        assert suffix[1:33] == _HASH32
        assert suffix[33:-1] == push_data(encode_script_number(142091))
        assert suffix[-1] == OpCode.OP_CHECKBLOCKATHEIGHT

    def test_p2pkh_protected(self) -> None:
        script = with_replay_protection(p2pkh_lock_script(_HASH20), _HASH32, 500)
        assert len(script) > 25
        assert classify_script(script) == ScriptType.P2PKH
        assert extract_pubkey_hash(script) == _HASH20

    def test_p2sh_protected(self) -> None:
        script = with_replay_protection(p2sh_lock_script(_HASH20), _HASH32, 500)
        assert classify_script(script) == ScriptType.P2SH
        assert extract_script_hash(script) == _HASH20

    def test_idempotent(self) -> None:
        once = with_replay_protection(p2pkh_lock_script(_HASH20), _HASH32, 500)
        assert with_replay_protection(once, _HASH32, 500) == once

    def test_other_types_untouched(self) -> None:
        script = p2wpkh_lock_script(_HASH20)
        assert with_replay_protection(script, _HASH32, 500) == script
        data = op_return_script(b"x")
        assert with_replay_protection(data, _HASH32, 500) == data

    def test_bad_block_hash(self) -> None:
        with pytest.raises(ValueError, match="32 bytes"):
            replay_protection_suffix(b"\x00" * 31, 1)

    def test_garbage_tail_not_p2pkh(self) -> None:
        script = p2pkh_lock_script(_HASH20) + b"\x01"
        assert classify_script(script) == ScriptType.UNKNOWN
