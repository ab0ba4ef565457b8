"""Verge transaction model and builder.

Verge transactions carry a 32-bit timestamp right after the version field.
The timestamp is part of the serialisation and of both the legacy and BIP143
digest preimages. Verge supports segregated witness: the marker and flag
follow the timestamp, and P2WPKH / P2WSH inputs are signed with the BIP143
digest like on Bitcoin.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from utxo_signer.bitcoin.transaction import Transaction, _read_exact
from utxo_signer.signing.builder import TransactionBuilder, TransactionT

if TYPE_CHECKING:
    from io import BytesIO

    from utxo_signer.signing.models import SigningInput, TransactionPlan


@dataclass
class VergeTransaction(Transaction):
    """A Verge transaction.

    Attributes:
        time: Transaction timestamp (seconds since epoch).
    """

    time: int = 0

    def _encode_prefix(self) -> bytes:
        return struct.pack("<iI", self.version, self.time)

    @classmethod
    def _read_prefix(cls, stream: BytesIO) -> dict[str, Any]:
        version, time = struct.unpack("<iI", _read_exact(stream, 8))
        return {"version": version, "time": time}


class VergeTransactionBuilder(TransactionBuilder):
    """Builder stamping the request's timestamp on Verge transactions."""

    # version + time + lock time + varint counts
    tx_overhead: ClassVar[int] = 14
    supports_delegation: ClassVar[bool] = False

    def _new_transaction(
        self,
        plan: TransactionPlan,
        signing_input: SigningInput,
        transaction_cls: type[TransactionT],
    ) -> TransactionT:
        tx = super()._new_transaction(plan, signing_input, transaction_cls)
        if isinstance(tx, VergeTransaction):
            tx.time = signing_input.time
        return tx
