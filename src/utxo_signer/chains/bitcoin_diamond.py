"""Bitcoin Diamond transaction model and builder.

From version 12 on, a Bitcoin Diamond transaction commits to the hash of a
previous block: 32 bytes written right after the version field, both in the
serialisation and in the legacy and BIP143 digest preimages.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from utxo_signer.bitcoin.transaction import Transaction, _read_exact
from utxo_signer.errors.signing_errors import PlanningFailedError
from utxo_signer.signing.builder import TransactionBuilder, TransactionT

if TYPE_CHECKING:
    from io import BytesIO

    from utxo_signer.signing.models import SigningInput, TransactionPlan

# First version carrying the previous block hash
FORK_VERSION = 12


@dataclass
class BitcoinDiamondTransaction(Transaction):
    """A Bitcoin Diamond transaction.

    Attributes:
        pre_block_hash: 32-byte previous block hash (version >= 12 only).
    """

    DEFAULT_VERSION: ClassVar[int] = FORK_VERSION

    version: int = FORK_VERSION
    pre_block_hash: bytes = field(default_factory=lambda: bytes(32))

    def __post_init__(self) -> None:
        if len(self.pre_block_hash) != 32:
            msg = f"pre_block_hash must be 32 bytes, got {len(self.pre_block_hash)}"
            raise ValueError(msg)

    def _encode_prefix(self) -> bytes:
        prefix = struct.pack("<i", self.version)
        if self.version >= FORK_VERSION:
            prefix += self.pre_block_hash
        return prefix

    @classmethod
    def _read_prefix(cls, stream: BytesIO) -> dict[str, Any]:
        version = struct.unpack("<i", _read_exact(stream, 4))[0]
        kwargs: dict[str, Any] = {"version": version}
        if version >= FORK_VERSION:
            kwargs["pre_block_hash"] = _read_exact(stream, 32)
        return kwargs


class BitcoinDiamondTransactionBuilder(TransactionBuilder):
    """Builder copying the plan's previous block hash into the transaction."""

    # version + previous block hash + lock time + varint counts
    tx_overhead: ClassVar[int] = 42
    supports_delegation: ClassVar[bool] = False

    def _new_transaction(
        self,
        plan: TransactionPlan,
        signing_input: SigningInput,
        transaction_cls: type[TransactionT],
    ) -> TransactionT:
        tx = super()._new_transaction(plan, signing_input, transaction_cls)
        if isinstance(tx, BitcoinDiamondTransaction):
            if len(plan.pre_block_hash) != 32:
                msg = "missing previous block hash"
                raise PlanningFailedError(msg)
            tx.pre_block_hash = plan.pre_block_hash
        return tx
