"""Groestlcoin transaction model.

Identical to the base model except that signature digests and the txid use a
single SHA-256 instead of double SHA-256.
"""

from __future__ import annotations

from dataclasses import dataclass

from utxo_signer.bitcoin.transaction import Transaction
from utxo_signer.utils.crypto import sha256


@dataclass
class GroestlcoinTransaction(Transaction):
    """A Groestlcoin transaction (single SHA-256 hashing)."""

    @staticmethod
    def hash_function(data: bytes) -> bytes:
        return sha256(data)
