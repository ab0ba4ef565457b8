"""Zcash (Sapling) transaction model and builder.

Sapling (v4, overwintered) transactions extend the base layout with an expiry
height, a value balance and the shielded spend/output sections. The signer
never creates shielded data; it is carried opaquely so that transparent
inputs can be signed with the ZIP-243 digest, which uses personalised
BLAKE2b-256 and commits to every input's amount and to the consensus branch.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from io import BytesIO
from typing import TYPE_CHECKING, ClassVar, Self

from utxo_signer.bitcoin.sighash import (
    SignatureVersion,
    is_anyone_can_pay,
    is_none,
    is_single,
)
from utxo_signer.bitcoin.transaction import (
    Transaction,
    TxInput,
    TxOutput,
    _read_exact,
    encode_var_bytes,
    encode_varint,
    read_varint,
)
from utxo_signer.signing.builder import TransactionBuilder, TransactionT
from utxo_signer.utils.crypto import blake2b_256

if TYPE_CHECKING:
    from utxo_signer.signing.models import SigningInput, TransactionPlan

SAPLING_VERSION = 4
SAPLING_VERSION_GROUP_ID = 0x892F2085
# Consensus branch id, little-endian
SAPLING_BRANCH_ID = struct.pack("<I", 0x76B809BB)

_OVERWINTERED_FLAG = 0x80000000
SPEND_DESCRIPTION_SIZE = 384
OUTPUT_DESCRIPTION_SIZE = 948
BINDING_SIGNATURE_SIZE = 64

_PREVOUTS_PERSONAL = b"ZcashPrevoutHash"
_SEQUENCE_PERSONAL = b"ZcashSequencHash"
_OUTPUTS_PERSONAL = b"ZcashOutputsHash"
_SPENDS_PERSONAL = b"ZcashSSpendsHash"
_SHIELDED_OUTPUTS_PERSONAL = b"ZcashSOutputHash"
_SIGHASH_PERSONAL = b"ZcashSigHash"


@dataclass
class ZcashTransaction(Transaction):
    """A Zcash Sapling transaction with transparent inputs.

    Attributes:
        expiry_height: Block height after which the transaction is invalid.
        value_balance: Net value of the shielded sections.
        shielded_spends: Raw 384-byte spend descriptions.
        shielded_outputs: Raw 948-byte output descriptions.
        binding_sig: 64-byte binding signature (present with shielded data).
        branch_id: 4-byte consensus branch id committed by the digest.
    """

    DEFAULT_VERSION: ClassVar[int] = SAPLING_VERSION
    supports_witness: ClassVar[bool] = False

    version: int = SAPLING_VERSION
    version_group_id: int = SAPLING_VERSION_GROUP_ID
    expiry_height: int = 0
    value_balance: int = 0
    shielded_spends: list[bytes] = field(default_factory=list)
    shielded_outputs: list[bytes] = field(default_factory=list)
    binding_sig: bytes = b""
    branch_id: bytes = SAPLING_BRANCH_ID

    def _header(self) -> bytes:
        return struct.pack("<II", self.version | _OVERWINTERED_FLAG, self.version_group_id)

    def _has_shielded_data(self) -> bool:
        return bool(self.shielded_spends or self.shielded_outputs)

    # -- Serialization -----------------------------------------------------

    def serialize(self, *, include_witness: bool = True) -> bytes:
        """Serialize in the Sapling v4 layout (no segwit section)."""
        result = self._header()
        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.serialize()
        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()
        result += struct.pack("<II", self.lock_time, self.expiry_height)
        result += struct.pack("<q", self.value_balance)
        result += encode_varint(len(self.shielded_spends)) + b"".join(self.shielded_spends)
        result += encode_varint(len(self.shielded_outputs)) + b"".join(self.shielded_outputs)
        result += encode_varint(0)  # joinsplits
        if self._has_shielded_data():
            result += self.binding_sig
        return result

    @classmethod
    def deserialize(cls, stream: BytesIO) -> Self:
        header, version_group_id = struct.unpack("<II", _read_exact(stream, 8))
        if not header & _OVERWINTERED_FLAG:
            msg = "Not an overwintered transaction"
            raise ValueError(msg)
        inputs = [TxInput.deserialize(stream) for _ in range(read_varint(stream))]
        outputs = [TxOutput.deserialize(stream) for _ in range(read_varint(stream))]
        lock_time, expiry_height = struct.unpack("<II", _read_exact(stream, 8))
        value_balance = struct.unpack("<q", _read_exact(stream, 8))[0]
        spends = [
            _read_exact(stream, SPEND_DESCRIPTION_SIZE) for _ in range(read_varint(stream))
        ]
        shielded_outputs = [
            _read_exact(stream, OUTPUT_DESCRIPTION_SIZE) for _ in range(read_varint(stream))
        ]
        if read_varint(stream) != 0:
            msg = "JoinSplit descriptions are not supported"
            raise ValueError(msg)
        binding_sig = b""
        if spends or shielded_outputs:
            binding_sig = _read_exact(stream, BINDING_SIGNATURE_SIZE)
        return cls(
            version=header & ~_OVERWINTERED_FLAG,
            version_group_id=version_group_id,
            inputs=inputs,
            outputs=outputs,
            lock_time=lock_time,
            expiry_height=expiry_height,
            value_balance=value_balance,
            shielded_spends=spends,
            shielded_outputs=shielded_outputs,
            binding_sig=binding_sig,
        )

    # -- Signature digests -------------------------------------------------

    def signature_hash(
        self,
        script_code: bytes,
        index: int,
        hash_type: int,
        amount: int,
        version: SignatureVersion,
    ) -> bytes:
        """ZIP-243 digest; used for every transparent input regardless of *version*."""
        if not 0 <= index < len(self.inputs):
            msg = f"Input index {index} out of range ({len(self.inputs)} inputs)"
            raise IndexError(msg)
        inp = self.inputs[index]
        preimage = self._header()
        preimage += self._zip243_prevouts(hash_type)
        preimage += self._zip243_sequence(hash_type)
        preimage += self._zip243_outputs(hash_type, index)
        preimage += bytes(32)  # joinsplits
        preimage += self._zip243_shielded(self.shielded_spends, _SPENDS_PERSONAL, strip=64)
        preimage += self._zip243_shielded(self.shielded_outputs, _SHIELDED_OUTPUTS_PERSONAL)
        preimage += struct.pack("<II", self.lock_time, self.expiry_height)
        preimage += struct.pack("<q", self.value_balance)
        preimage += struct.pack("<I", hash_type)
        preimage += inp.previous_output.serialize()
        preimage += encode_var_bytes(script_code)
        preimage += struct.pack("<q", amount)
        preimage += struct.pack("<I", inp.sequence)
        return blake2b_256(preimage, _SIGHASH_PERSONAL + self.branch_id)

    def _zip243_prevouts(self, hash_type: int) -> bytes:
        if is_anyone_can_pay(hash_type):
            return bytes(32)
        data = b"".join(inp.previous_output.serialize() for inp in self.inputs)
        return blake2b_256(data, _PREVOUTS_PERSONAL)

    def _zip243_sequence(self, hash_type: int) -> bytes:
        if is_anyone_can_pay(hash_type) or is_single(hash_type) or is_none(hash_type):
            return bytes(32)
        data = b"".join(struct.pack("<I", inp.sequence) for inp in self.inputs)
        return blake2b_256(data, _SEQUENCE_PERSONAL)

    def _zip243_outputs(self, hash_type: int, index: int) -> bytes:
        if not is_single(hash_type) and not is_none(hash_type):
            data = b"".join(out.serialize() for out in self.outputs)
            return blake2b_256(data, _OUTPUTS_PERSONAL)
        if is_single(hash_type) and index < len(self.outputs):
            return blake2b_256(self.outputs[index].serialize(), _OUTPUTS_PERSONAL)
        return bytes(32)

    @staticmethod
    def _zip243_shielded(items: list[bytes], person: bytes, strip: int = 0) -> bytes:
        # Spend descriptions are committed without their spend authorisation signature
        if not items:
            return bytes(32)
        data = b"".join(item[: len(item) - strip] for item in items)
        return blake2b_256(data, person)


class ZcashTransactionBuilder(TransactionBuilder):
    """Builder setting the consensus branch and expiry height."""

    # header + group id + lock time + expiry + value balance + varint counts
    tx_overhead: ClassVar[int] = 29
    supports_delegation: ClassVar[bool] = False

    def _new_transaction(
        self,
        plan: TransactionPlan,
        signing_input: SigningInput,
        transaction_cls: type[TransactionT],
    ) -> TransactionT:
        tx = super()._new_transaction(plan, signing_input, transaction_cls)
        if isinstance(tx, ZcashTransaction):
            tx.branch_id = plan.branch_id or SAPLING_BRANCH_ID
            tx.expiry_height = signing_input.expiry_height
        return tx
