"""Signing models.

Data classes describing a signing request, the plan decided for it, and the
execution modes of the signature builder.
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Mapping
from typing import TYPE_CHECKING

from utxo_signer.bitcoin.sighash import SigHashType
from utxo_signer.bitcoin.transaction import DEFAULT_SEQUENCE, OutPoint

if TYPE_CHECKING:
    from utxo_signer.errors.signing_errors import SigningErrorCode

# (DER signature without sighash byte, public key), one per input
SignaturePubkeyList = list[tuple[bytes, bytes]]

# (32-byte digest, public key), one per input
HashPubkeyList = list[tuple[bytes, bytes]]


class SigningMode(enum.Enum):
    """Mutually exclusive execution modes of the signature builder."""

    NORMAL = "normal"
    SIZE_ESTIMATION_ONLY = "size_estimation_only"
    EXTERNAL = "external"
    HASH_ONLY = "hash_only"


@dataclasses.dataclass(frozen=True)
class UnspentTransaction:
    """A coin available for spending."""

    out_point: OutPoint
    amount: int
    script: bytes  # owning (locking) script
    sequence: int = DEFAULT_SEQUENCE
    claim_script: bytes = b""  # spending payload for the delegated class


@dataclasses.dataclass(frozen=True)
class TransactionPlan:
    """The decided inputs, amounts and fee for one transaction.

    ``error`` is set instead of raising when the builder cannot find a valid
    plan; building from such a plan fails with that error.
    """

    amount: int = 0
    available_amount: int = 0
    fee: int = 0
    change: int = 0
    utxos: tuple[UnspentTransaction, ...] = ()
    branch_id: bytes = b""
    pre_block_hash: bytes = b""
    pre_block_height: int = 0
    output_op_return: bytes = b""
    error: SigningErrorCode | None = None

    @property
    def total_input(self) -> int:
        """Sum of the selected coin amounts."""
        return sum(u.amount for u in self.utxos)

    @property
    def is_valid(self) -> bool:
        """Check that the selected coins cover amount + change + fee."""
        return self.error is None and self.total_input >= self.amount + self.change + self.fee


@dataclasses.dataclass(frozen=True)
class SigningInput:
    """Immutable signing request.

    ``private_keys`` are 32-byte scalars. ``public_keys`` lets watch-only
    callers resolve the key expected to sign each input (digest-only flows).
    ``scripts`` maps the hex script hash of a P2SH (Hash160) or P2WSH
    (SHA-256) output to its redeem / witness script.
    """

    utxos: tuple[UnspentTransaction, ...] = ()
    amount: int = 0
    to_script: bytes = b""
    change_script: bytes = b""
    byte_fee: int | None = None
    fixed_fee: int | None = None
    hash_type: int = SigHashType.ALL
    private_keys: tuple[bytes, ...] = ()
    public_keys: tuple[bytes, ...] = ()
    scripts: Mapping[str, bytes] = dataclasses.field(default_factory=dict)
    use_max_amount: bool = False
    lock_time: int = 0
    output_op_return: bytes = b""
    extra_outputs: tuple[tuple[int, bytes], ...] = ()
    plan: TransactionPlan | None = None
    delegated: bool = False

    # Chain parameters
    time: int = 0  # Verge
    expiry_height: int = 0  # Zcash
    branch_id: bytes = b""  # Zcash consensus branch
    pre_block_hash: bytes = b""  # Zen / Bitcoin Diamond
    pre_block_height: int = 0  # Zen

    @property
    def total_available(self) -> int:
        return sum(u.amount for u in self.utxos)

    @property
    def extra_outputs_amount(self) -> int:
        return sum(amount for amount, _ in self.extra_outputs)

    def with_plan(self, plan: TransactionPlan) -> SigningInput:
        """Return a copy of this request carrying *plan*."""
        return dataclasses.replace(self, plan=plan)
