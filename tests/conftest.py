"""Shared test fixtures for the utxo-signer test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from utxo_signer.bitcoin.keys import private_key_to_public_key
from utxo_signer.bitcoin.script import p2pkh_lock_script_from_pubkey
from utxo_signer.bitcoin.transaction import OutPoint
from utxo_signer.signing.models import UnspentTransaction

if TYPE_CHECKING:
    from collections.abc import Callable

# BIP143 native P2WPKH example key
KEY_A = bytes.fromhex("619c335025c7f4012e556c2a58b2506e30b8511b53ade95ea316fd8c3286feb9")
# Scalar 1 (public key is the generator point)
KEY_B = (1).to_bytes(32, "big")


@pytest.fixture
def key_a() -> bytes:
    return KEY_A


@pytest.fixture
def key_b() -> bytes:
    return KEY_B


@pytest.fixture
def pubkey_a() -> bytes:
    return private_key_to_public_key(KEY_A)


@pytest.fixture
def pubkey_b() -> bytes:
    return private_key_to_public_key(KEY_B)


@pytest.fixture
def to_script() -> bytes:
    """Recipient P2PKH script (unrelated key)."""
    return bytes.fromhex("76a9148280b37df378db99f66f85c95a783a76ac7a6d5988ac")


@pytest.fixture
def change_script(pubkey_a) -> bytes:
    return p2pkh_lock_script_from_pubkey(pubkey_a)


@pytest.fixture
def make_utxo() -> Callable[..., UnspentTransaction]:
    """Factory for coins with a distinct out point per *n*."""

    def _make(n: int, amount: int, script: bytes, **kwargs) -> UnspentTransaction:
        return UnspentTransaction(
            out_point=OutPoint(hash=bytes([n + 1]) * 32, index=n),
            amount=amount,
            script=script,
            **kwargs,
        )

    return _make
